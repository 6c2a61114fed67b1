from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Ollama (local network model)
    ollama_base_url: str = ""
    ollama_model: str = ""
    ollama_sub_model: str = ""

    # Hosted providers, checked in this order
    google_generative_ai_api_key: str = ""
    google_model: str = "gemini-1.5-pro-latest"
    google_api_base: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-sonnet-20240620"
    anthropic_api_base: str = "https://api.anthropic.com/v1/"
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = ""

    # OpenAI chat + assistant
    openai_api_key: str = ""
    openai_api_base: str = ""
    openai_api_model: str = "gpt-4o"
    openai_assistant_id: str = ""

    # Writer model used in tool-forced mode
    use_specific_api_for_writer: bool = False
    specific_api_base: str = ""
    specific_api_key: str = ""
    specific_api_model: str = ""

    # Assistant adapter
    assistant_poll_interval: float = 1.0
    assistant_run_timeout: float = 120.0
    assistant_thread_scope: str = "conversation"  # conversation | call
    assistant_instructions: str = (
        "Use the provided tools to answer questions. "
        "If you don't have relevant information, say 'Sorry, I don't know.'"
    )
    stream_chunk_delay: float = 0.0
    assistant_max_threads: int = 256

    # Orchestration
    turn_timeout: float = 300.0
    researcher_max_steps: int = 5
    max_tokens: int = 2500
    max_live_conversations: int = 256

    # Tools
    tavily_api_key: str = ""
    exa_api_key: str = ""
    exa_base_url: str = "https://api.exa.ai"
    recommendation_api_url: str = "http://localhost:3334/search-news-assets?searchQuery={query}"
    video_search_api_url: str = "http://localhost:3334/search-videos?searchQuery={query}"
    enable_custom_video_search: bool = False
    enable_related_videos: bool = False
    video_cache_ttl: float = 10.0
    search_baseline_domain: str = "news"
    default_search_route: str = ""  # web | semantic | "" (general)
    http_timeout: float = 30.0

    # Moderation
    moderation_enabled: bool = True
    term_source: str = "none"  # none | file | kv
    sensitive_terms_path: str = "sensitive-terms.json"
    upstash_redis_rest_url: str = ""
    upstash_redis_rest_token: str = ""
    sensitive_terms_key: str = "sensitive_terms"

    # Persistence
    chat_store: str = "memory"  # memory | supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # App
    api_host: str = "0.0.0.0"
    api_port: int = 8000
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

    @property
    def ollama_configured(self) -> bool:
        return bool(self.ollama_base_url and self.ollama_model)

    @property
    def tool_forced_mode(self) -> bool:
        return self.use_specific_api_for_writer

    @property
    def message_window(self) -> int:
        """Number of recent messages handed to the models for one turn."""
        if self.tool_forced_mode:
            return 5
        if self.ollama_configured:
            return 1
        return 10


settings = Settings()
