"""Environment-level settings: provider credentials, endpoints and HTTP retry policy.

Loop thresholds and budgets live in ``config/models.yaml`` profiles, not here.
"""

import logging
import os
from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)

# LLM providers. Generation, critique, ranking and synthesis all share one provider.
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_DEFAULT_MODEL = os.getenv("OPENROUTER_DEFAULT_MODEL", "arcee-ai/trinity-mini:free")

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_DEFAULT_MODEL = os.getenv("ANTHROPIC_DEFAULT_MODEL", "claude-3-5-haiku-latest")

# Web search used by the research augmenter
TAVILY_API_KEY = os.getenv("TAVILY_API_KEY")
TAVILY_BASE_URL = os.getenv("TAVILY_BASE_URL", "https://api.tavily.com")
SEARCH_REQUESTS_PER_SECOND = float(os.getenv("SEARCH_REQUESTS_PER_SECOND", "2.0"))

# Backoff for 429/5xx and transport errors: RETRY_BACKOFF_FACTOR ** attempt seconds
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "5"))
RETRY_BACKOFF_FACTOR = 2.0
