# config.py - Main Configuration File for the Book Source Engine

import os
from pathlib import Path

# =============================================================================
# Application Settings
# =============================================================================
APP_NAME = "BookSourceEngine"
VERSION = "1.0.0"

# =============================================================================
# Logging Configuration
# =============================================================================
DEFAULT_LOGGER_NAME = "book_scraper"
LOG_FILE_PATH = os.getenv("BOOK_SCRAPER_LOG_FILE", "logs/book_scraper.log")
LOG_LEVEL_CONSOLE = os.getenv("BOOK_SCRAPER_LOG_LEVEL", "INFO")
LOG_LEVEL_FILE = "DEBUG"

# =============================================================================
# HTTP/Fetching Configuration
# =============================================================================
USER_AGENT = ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
              "(KHTML, like Gecko) Chrome/120.0 Safari/537.36")
DEFAULT_REQUEST_TIMEOUT = int(os.getenv("BOOK_SCRAPER_TIMEOUT", "30"))
MAX_CONCURRENT_FETCHERS = int(os.getenv("BOOK_SCRAPER_WORKERS", "8"))
MAX_REDIRECTS = 10
DEFAULT_ENCODING = "utf-8"

# =============================================================================
# Extraction Configuration
# =============================================================================
# "concat": base URL + relative value, exactly as existing source rules expect.
# "join": standards-based resolution (urllib.parse.urljoin).
URL_RESOLUTION_STRATEGY = os.getenv("BOOK_SCRAPER_URL_RESOLUTION", "concat")

# Upper bound for following "next page" links of catalogs and chapters
MAX_FOLLOW_PAGES = 50

# =============================================================================
# Validation Configuration
# =============================================================================
VALIDATION_PROBE_KEYWORD = os.getenv("BOOK_SCRAPER_PROBE_KEYWORD", "测试")

# =============================================================================
# File Paths
# =============================================================================
BASE_DIR = Path(__file__).parent
DEFAULT_SOURCES_PATH = os.getenv("BOOK_SCRAPER_SOURCES", str(BASE_DIR / "sources" / "book_sources.json"))

# =============================================================================
# Debug Settings
# =============================================================================
DEBUG_MODE = os.getenv("DEBUG", "false").lower() == "true"
VERBOSE_LOGGING = DEBUG_MODE
