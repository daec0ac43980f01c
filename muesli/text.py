"""Centralized user-facing text for the muesli CLI."""

from __future__ import annotations


class Styles:
    ERROR = "red"
    WARNING = "yellow"
    SUCCESS = "green"
    INFO = "dim"
    TITLE = "bold cyan"
    TABLE_HEADER = "bold magenta"


class Messages:
    UNTITLED = "Untitled"
    APP_HELP = "muesli: sync Granola meeting transcripts to Markdown and search them."
    HELP_TOKEN = "Bearer token (overrides session file and environment)."
    HELP_API_BASE = "API base URL."
    HELP_DATA_DIR = "Override the data directory."
    HELP_CONFIG_DIR = "Use an alternate config directory for this run."
    HELP_NO_THROTTLE = "Disable request throttling (not recommended)."
    HELP_THROTTLE = "Throttle range in milliseconds, formatted as min:max."
    HELP_VERSION = "Show version and exit."
    HELP_SYNC = "Sync all documents (default command)."
    HELP_SYNC_REINDEX = "Rebuild the search index and embeddings from local files without downloading."
    HELP_SYNC_NO_INDEX = "Skip full-text indexing for this pass."
    HELP_SYNC_NO_EMBEDDINGS = "Skip embedding generation for this pass."
    HELP_LIST = "List all remote documents."
    HELP_FETCH = "Fetch a single document by ID."
    HELP_FETCH_ID = "Document ID to fetch."
    HELP_SEARCH = "Search synced transcripts."
    HELP_SEARCH_QUERY = "Search query string."
    HELP_SEARCH_LIMIT = "Maximum number of results to return."
    HELP_SEARCH_SEMANTIC = "Use semantic search over embeddings."
    HELP_OPEN = "Open the data directory in the system file browser."
    HELP_FIX_DATES = "Set file modification times to meeting creation dates."
    HELP_SUMMARIZE = "Summarize a transcript using OpenAI."
    HELP_SUMMARIZE_ID = "Document ID to summarize."
    HELP_SUMMARIZE_SAVE = "Save the summary to a file instead of printing it."
    HELP_SET_API_KEY = "Store the OpenAI API key in the system keychain (macOS only)."
    HELP_CONFIG = "Show or update the persisted configuration."
    HELP_SHOW_CONFIG = "Show current configuration."
    HELP_SET_EMBED_PROVIDER = "Set the embedding provider (local or openai)."
    HELP_SET_EMBED_MODEL = "Set the embedding model name."
    HELP_SET_EMBED_BUDGET = "Set the embedding input budget in characters."
    HELP_SET_SUMMARY_MODEL = "Set the OpenAI model used for summaries."
    HELP_SET_CONTEXT_WINDOW = "Set the summary context window in characters."
    HELP_SET_PROMPT_FILE = "Use a custom prompt file for summaries."
    HELP_SET_DATA_DIR = "Persist a default data directory."
    HELP_SET_API_BASE = "Persist a default API base URL."
    HELP_SET_OPENAI_API_KEY = "Persist an OpenAI API key in the config file."
    HELP_CLEAR_OPENAI_API_KEY = "Remove the OpenAI API key from the config file."

    ERROR_PREFIX = "muesli: [E{code}] {message}"
    ERROR_TOKEN_MISSING = (
        "No bearer token found. Provide via --token or BEARER_TOKEN env var, "
        "or log in to Granola."
    )
    ERROR_OPENAI_KEY_MISSING = (
        "OpenAI API key is missing. Set OPENAI_API_KEY, run `muesli set-api-key <key>`, "
        "or `muesli config --set-openai-api-key <key>`."
    )
    ERROR_KEYCHAIN_UNSUPPORTED = (
        "Keychain access only supported on macOS. Set OPENAI_API_KEY environment variable."
    )
    ERROR_KEYCHAIN_FAILED = "Failed to access keychain: {reason}"
    ERROR_SESSION_FILE = "Failed to read Granola session file {path}: {reason}"
    ERROR_THROTTLE_FORMAT = "Expected format: min:max"
    ERROR_THROTTLE_VALUE = "Invalid throttle value: {value}"
    ERROR_THROTTLE_ORDER = "min must be <= max"
    ERROR_NETWORK = "Network error on {endpoint}: {reason}"
    ERROR_PARSE_RESPONSE = "Failed to parse response from {endpoint}: {reason}"
    ERROR_PARSE_FIELD = "Missing or invalid field '{field}' in {what}"
    ERROR_PARSE_TIMESTAMP = "Invalid timestamp: {value}"
    ERROR_FRONTMATTER = "Failed to parse frontmatter in {path}: {reason}"
    ERROR_FRONTMATTER_DUMP = "Failed to serialize frontmatter: {reason}"
    ERROR_WRITE_FAILED = "Failed to write {path}: {reason}"
    ERROR_TRANSCRIPT_NOT_FOUND = "No transcript found for document ID: {doc_id}"
    ERROR_INDEX_MISSING = "No index found. Run 'muesli sync' first to build the index."
    ERROR_VECTORS_MISSING = (
        "No vector store found. Run 'muesli sync' first to generate embeddings."
    )
    ERROR_VECTORS_CORRUPT = "Invalid vector data in {path}: {size} bytes is not a multiple of 4"
    ERROR_VECTORS_READ = "Failed to read vector store at {path}: {reason}"
    ERROR_VECTORS_MAPPING = "Vector store is truncated: {doc_id} at offset {offset} has no data"
    ERROR_INDEX_OPEN = "Failed to open search index at {path}: {reason}"
    ERROR_INDEX_WRITE = "Failed to index document {doc_id}: {reason}"
    ERROR_INDEX_COMMIT = "Failed to commit index changes: {reason}"
    ERROR_INDEX_CLEAR = "Failed to clear search index: {reason}"
    ERROR_INDEX_ROLLBACK = "Failed to discard index changes: {reason}"
    ERROR_INDEX_QUERY = "Search failed: {reason}"
    ERROR_EMBED_PROVIDER_INVALID = "Unsupported embedding provider '{value}'. Allowed: {allowed}"
    ERROR_EMBED_FAILED = "Embedding request failed: {reason}"
    ERROR_NO_EMBEDDINGS = "Embedding backend returned no embeddings."
    ERROR_LOCAL_DEP_MISSING = (
        "Local embeddings require fastembed. Install it with `pip install fastembed`."
    )
    ERROR_LOCAL_MODEL_LOAD = "Failed to load local model {model}: {reason}"
    ERROR_LOCAL_MODEL_EMBED = "Local embedding failed: {reason}"
    ERROR_OPENAI_PREFIX = "OpenAI API request failed: "
    ERROR_SUMMARY_EMPTY = "No response from OpenAI"
    ERROR_PROMPT_FILE = "Failed to read prompt file {path}: {reason}"
    ERROR_CONFIG_JSON_INVALID = "Config JSON must be an object."
    ERROR_CONFIG_VALUE_INVALID = "Invalid config value for {field}."
    ERROR_OPEN_FAILED = "Failed to open data directory: {reason}"

    WARNING_INDEX_DOC = "Warning: Failed to index document {doc_id}: {reason}"
    WARNING_INDEX_COMMIT = "Warning: Failed to commit index changes: {reason}"
    WARNING_EMBED_DOC = "Warning: Failed to embed document {doc_id}: {reason}"
    WARNING_EMBED_SETUP = "Warning: Embeddings disabled for this pass: {reason}"
    WARNING_INDEX_SETUP = "Warning: Search index disabled for this pass: {reason}"
    WARNING_VECTORS_SAVE = "Warning: Failed to save vector store: {reason}"
    WARNING_VECTORS_RESET = "Warning: Vector store at {path} could not be loaded ({reason}); starting fresh."
    WARNING_FRONTMATTER_SKIP = "Warning: Skipping {path}: {reason}"

    INFO_FETCHING_LIST = "Fetching document list..."
    INFO_SYNCING = "Syncing documents"
    INFO_SYNC_DONE = "synced {total} docs ({updated} new/updated, {skipped} skipped)"
    INFO_EMBEDDED = "Embedded {count} documents"
    INFO_INDEXED = "Indexed {count} documents"
    INFO_REINDEX_RUNNING = "Reindexing local transcripts under {path}..."
    INFO_REINDEX_DONE = "Reindexed {indexed} documents ({embedded} embedded)"
    INFO_WROTE = "wrote {path}"
    INFO_NO_RESULTS = "No results found for: {query}"
    INFO_OPENED = "Opened data directory: {path}"
    INFO_FIX_DATES_DONE = "Updated modification times on {count} files"
    INFO_SUMMARIZING = "Summarizing transcript..."
    INFO_SUMMARIZING_CHUNK = "Summarizing chunk {index}/{total}..."
    INFO_SUMMARY_SAVED = "Summary saved to: {path}"
    INFO_API_KEY_STORED = "OpenAI API key stored in keychain"
    INFO_CONFIG_SAVED = "Configuration saved."
    INFO_CONFIG_SUMMARY = (
        "API base: {api_base}\n"
        "Data directory: {data_dir}\n"
        "Throttle: {throttle_min}-{throttle_max} ms\n"
        "Embedding provider: {embed_provider}\n"
        "Embedding model: {embed_model}\n"
        "Embedding budget: {embed_budget} chars\n"
        "OpenAI API key set: {openai_key}\n"
        "Summary model: {summary_model}\n"
        "Context window: {context_window} chars\n"
        "Prompt file: {prompt_file}"
    )
    INFO_LIST_ROW = "{id}\t{date}\t{title}"
    INFO_SEARCH_RESULT = "{rank}. {title} ({date})  {path}"
    INFO_SEMANTIC_RESULT = "{rank}. {title} ({date}) [score: {score:.3f}]  {path}"
