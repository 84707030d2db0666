from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "meta-llama/llama-4-scout"
    openrouter_model: str = ""

    # Search provider
    search_provider: str = "searxng"  # searxng | brave | tavily
    search_fallback_provider: str = ""  # optional: searxng | brave | tavily
    searxng_base_url: str = "http://localhost:8001"
    brave_api_key: str = ""
    tavily_api_key: str = ""
    search_timeout_seconds: float = 10.0
    search_max_results: int = 10

    # Page fetching
    fetch_timeout_seconds: float = 3.0
    fetch_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    fetch_max_parallel: int = 1

    # Embeddings
    embedding_backend: str = "ollama"  # ollama | local
    ollama_base_url: str = "http://localhost:11434"
    ollama_embed_model: str = "embeddinggemma:300m-qat-q4_0"
    local_embed_model: str = "bge-small-en-v1.5"
    embed_batch_size: int = 32
    embed_timeout_seconds: float = 60.0

    # Chroma
    chroma_mode: str = "http"  # http | persistent | ephemeral
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_persist_dir: str = ".cache/chroma"

    # Context pipeline defaults
    pipeline_max_results: int = 3
    pipeline_top_k: int = 5
    pipeline_chunk_size: int = 500
    pipeline_chunk_overlap: int = 50
    pipeline_min_content_chars: int = 100
    pipeline_max_content_chars: int = 10000

    # Multi-query orchestration
    multi_query_count: int = 5
    multi_query_max_results: int = 2
    multi_query_top_k: int = 3

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
