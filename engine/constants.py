"""
Constants and configuration values for the content-intelligence engine.
"""

# Similarity Bounds
SIMILARITY_MIN = -1.0
SIMILARITY_MAX = 1.0
EMBEDDING_MIN_NORM = 1e-12

# Theme Detection
THEME_WINDOW_DAYS = 7
THEME_SIMILARITY_THRESHOLD = 0.8  # Inclusive: seed similarity >= threshold joins
THEME_MIN_CONTENT = 3  # Below this many embedded items, no signal
THEME_MIN_CLUSTER_SIZE = 2
THEME_MIN_SOURCES = 3  # Distinct sources required for a theme
THEME_MAX_PER_TOPIC = 5
THEME_TTL_DAYS = 7

# Theme Titles
THEME_TITLE_PREFIX = "Trending in"
THEME_TITLE_MAX_CHARS = 100
THEME_SUBTITLE_MAX_CHARS = 40
THEME_TITLE_SAMPLES = 10  # Member titles sent for naming context
THEME_TITLE_CACHE_PATH = ".cache/theme_titles.json"

# Topic Weights
WEIGHT_DEFAULT = 1.0
WEIGHT_MIN = 0.1
WEIGHT_MAX = 5.0
WEIGHT_ADJUST_READ = 0.1
WEIGHT_ADJUST_SAVE = 0.2
WEIGHT_ADJUST_DISMISS = -0.1

# Feed Scoring
DEFAULT_QUALITY_SCORE = 50
RECENCY_BOOST_DAY = 20  # Published < 24h ago
RECENCY_BOOST_WEEK = 10  # Published < 7 days ago
RECENCY_DAY_HOURS = 24
RECENCY_WEEK_HOURS = 24 * 7
TOPIC_MATCH_MAX = 50.0

# Personalized Feed
FEED_DEFAULT_LIMIT = 20
FEED_MAX_LIMIT = 100
FEED_FETCH_MULTIPLIER = 3  # Over-fetch so scoring has room to reorder

# Digest
DIGEST_WINDOW_HOURS = 24
DIGEST_MAX_ITEMS = 10
DIGEST_MAX_PER_SOURCE = 2
DEFAULT_DIGEST_TIME = "07:00"

# Search
SEARCH_DEFAULT_LIMIT = 20
SEARCH_MAX_LIMIT = 100
SEARCH_KEYWORD_WEIGHT = 1.0
SEARCH_CROSS_METHOD_BOOST = 1.5  # Semantic hit that is also a keyword hit
SEARCH_SEMANTIC_ONLY_WEIGHT = 0.8  # Semantic-only hits are noisier
SEMANTIC_MATCH_THRESHOLD = 0.7

# Batch Jobs
JOB_TOPIC_CONCURRENCY = 4

# Store
DEFAULT_STORE_PATH = ".cache/store.json"

# LLM Configuration (theme titles)
LLM_API_URL = "https://api.anthropic.com/v1/messages"
LLM_API_VERSION = "2023-06-01"
LLM_THEME_TITLE_MODEL = "claude-3-5-sonnet-20241022"
LLM_THEME_TITLE_PROMPT_VERSION = "v1"
LLM_THEME_TITLE_MAX_TOKENS = 100
LLM_TEMPERATURE = 0.2
LLM_MAX_RETRIES = 3
LLM_MIN_REQUEST_INTERVAL = 1.0  # Minimum seconds between LLM requests
LLM_429_COOLDOWN_BASE = 2.0
LLM_429_COOLDOWN_MAX = 60.0
LLM_HTTP_USER_AGENT = "signal-engine/0.1"

# Embeddings (semantic search)
EMBEDDING_API_URL = "https://api.openai.com/v1/embeddings"
EMBEDDING_MODEL = "text-embedding-3-small"
EMBEDDING_MAX_INPUT_CHARS = 32000

# Rate Limiting / HTTP
RATE_LIMIT_ERROR_BACKOFF_BASE = 1.0
RATE_LIMIT_ERROR_BACKOFF_MAX = 30.0
HTTP_CONNECT_TIMEOUT = 10.0
HTTP_READ_TIMEOUT = 30.0
HTTP_WRITE_TIMEOUT = 10.0
HTTP_POOL_TIMEOUT = 5.0
