"""
Configuration settings for the agents package.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


################################
# Model Configuration
################################

#==============================================================================
# GENERATION MODELS
#==============================================================================

# Aliases resolve through agents.ai.clients.MODELS
OUTLINE_MODEL = os.getenv('OUTLINE_MODEL', "claude-sonnet-4-5")
PREPROCESS_MODEL = os.getenv('PREPROCESS_MODEL', OUTLINE_MODEL)
RESEARCH_MODEL = os.getenv('RESEARCH_MODEL', OUTLINE_MODEL)
SLIDE_MODEL = os.getenv('SLIDE_MODEL', OUTLINE_MODEL)

#==============================================================================
# COMPLETION PARAMETERS
#==============================================================================

PREPROCESS_MAX_TOKENS = 500
PREPROCESS_TEMPERATURE = 0.7

QUERY_PLANNING_MAX_TOKENS = 200
QUERY_PLANNING_TEMPERATURE = 0.5

RESEARCH_EXTRACTION_MAX_TOKENS = 2000
RESEARCH_EXTRACTION_TEMPERATURE = 0.5

OUTLINE_MAX_TOKENS = 4000
OUTLINE_TEMPERATURE = 0.7

SLIDE_MAX_TOKENS = 8000
SLIDE_TEMPERATURE = 0.7

# Extra attempts per completion call for retryable upstream errors
COMPLETION_RETRIES = int(os.getenv('COMPLETION_RETRIES', '1'))

# Ask for a typed accept/reject verdict before falling back to sentinel parsing
USE_STRUCTURED_ENHANCEMENT = _env_bool('USE_STRUCTURED_ENHANCEMENT', 'true')

#==============================================================================
# PROMPT GUARD
#==============================================================================

PROMPT_MIN_CHARS = 3
PROMPT_MAX_CHARS = 1000

#==============================================================================
# RESEARCH CONFIGURATION
#==============================================================================

RESEARCH_RESULTS_PER_QUERY = int(os.getenv('RESEARCH_RESULTS_PER_QUERY', '5'))
RESEARCH_QUERY_DELAY = float(os.getenv('RESEARCH_QUERY_DELAY', '1.0'))
RESEARCH_MAX_PARALLEL_QUERIES = int(os.getenv('RESEARCH_MAX_PARALLEL_QUERIES', '1'))
RESEARCH_TOP_RESULTS = 15
RESEARCH_MAX_QUERIES = 3
RESEARCH_SIMPLE_PROMPT_MAX_WORDS = 20

#==============================================================================
# SEARCH PROVIDER
#==============================================================================

BRAVE_SEARCH_API_KEY = os.getenv('BRAVE_SEARCH_API_KEY')
BRAVE_SEARCH_URL = os.getenv('BRAVE_SEARCH_URL', 'https://api.search.brave.com/res/v1/web/search')
SEARCH_TIMEOUT_SECONDS = float(os.getenv('SEARCH_TIMEOUT_SECONDS', '10'))

#==============================================================================
# STATUS CHANNEL
#==============================================================================

# Server push re-read interval (seconds)
STATUS_STREAM_INTERVAL = float(os.getenv('STATUS_STREAM_INTERVAL', '5'))

# Client fallback polling interval (seconds)
STATUS_POLL_INTERVAL = float(os.getenv('STATUS_POLL_INTERVAL', '10'))

#==============================================================================
# BACKGROUND GENERATION
#==============================================================================

GENERATION_TIMEOUT_SECONDS = float(os.getenv('GENERATION_TIMEOUT_SECONDS', '600'))
MAX_CONCURRENT_GENERATIONS = int(os.getenv('MAX_CONCURRENT_GENERATIONS', '10'))
JOB_SHUTDOWN_GRACE_SECONDS = float(os.getenv('JOB_SHUTDOWN_GRACE_SECONDS', '10'))

# Attempts per job, including the first; 1 disables job-level retry
JOB_MAX_ATTEMPTS = int(os.getenv('JOB_MAX_ATTEMPTS', '1'))

#==============================================================================
# PRESENTATION DEFAULTS
#==============================================================================

DEFAULT_CITATION_STYLE = 'inline'
DEFAULT_THEME = 'minimal'
UNTITLED_PRESENTATION = 'Untitled Presentation'

#==============================================================================
# RECORD STORE
#==============================================================================

SUPABASE_URL = os.getenv('SUPABASE_URL')
SUPABASE_SERVICE_KEY = os.getenv('SUPABASE_SERVICE_KEY') or os.getenv('SUPABASE_KEY')
USE_MEMORY_STORE = _env_bool('USE_MEMORY_STORE', 'false')

DRAFTS_TABLE = 'drafts'
PRESENTATIONS_TABLE = 'presentations'
JOBS_TABLE = 'generation_jobs'
