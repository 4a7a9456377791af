"""
Oracle Server Configuration

All environment variables MUST be defined here. No os.getenv() calls allowed
elsewhere. main.py loads .env before calling load_settings().
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_ABI_PATH = Path(__file__).resolve().parent.parent / "execution" / "abi" / "PredictionMarket.json"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _optional_env(name: str, default: str = "") -> str:
    """Get an optional environment variable with a default."""
    return os.environ.get(name, default)


def _optional_env_int(name: str, default: int) -> int:
    """Get an optional integer environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {name}: {value}")


def _optional_env_float(name: str, default: float) -> float:
    """Get an optional float environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Invalid float value for {name}: {value}")


@dataclass(frozen=True)
class RetrievalConfig:
    """Perplexity retrieval API configuration."""
    api_key: str
    base_url: str = "https://api.perplexity.ai"
    model: str = "sonar"
    recency: str = "week"
    timeout_s: float = 30.0


@dataclass(frozen=True)
class LLMConfig:
    """Groq completion configuration."""
    api_key: str
    model: str = "llama-3.3-70b-versatile"
    timeout_s: float = 60.0
    generation_temperature: float = 0.7
    adjudication_temperature: float = 0.1


@dataclass(frozen=True)
class ChainConfig:
    """EVM RPC, signing key and contract binding configuration."""
    rpc_url: str
    private_key: str
    contract_address: str
    abi_path: Path = DEFAULT_ABI_PATH
    receipt_timeout_s: float = 180.0


@dataclass(frozen=True)
class ServerConfig:
    """HTTP server configuration."""
    host: str
    port: int


@dataclass(frozen=True)
class FeedConfig:
    """Redis lifecycle-event feed configuration (empty url disables it)."""
    redis_url: str

    @property
    def enabled(self) -> bool:
        return bool(self.redis_url)


@dataclass(frozen=True)
class Settings:
    """Root configuration container."""
    retrieval: RetrievalConfig
    llm: LLMConfig
    chain: ChainConfig
    server: ServerConfig
    feed: FeedConfig

    def require_live(self) -> None:
        """
        Raise ConfigurationError naming every credential missing for live mode.

        Mock mode never calls this, so it runs without a .env file.
        """
        required = {
            "PERPLEXITY_API_KEY": self.retrieval.api_key,
            "GROQ_API_KEY": self.llm.api_key,
            "RPC_URL": self.chain.rpc_url,
            "PRIVATE_KEY": self.chain.private_key,
            "CONTRACT_ADDRESS": self.chain.contract_address,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(
                "Missing required environment variables for live mode: "
                + ", ".join(missing)
                + "\nPlease set these in your .env file or environment."
            )
        if not self.chain.abi_path.is_file():
            raise ConfigurationError(f"Contract ABI not found at {self.chain.abi_path}")


def load_settings() -> Settings:
    """Load all settings from environment variables."""
    retrieval = RetrievalConfig(
        api_key=_optional_env("PERPLEXITY_API_KEY"),
        base_url=_optional_env("PERPLEXITY_BASE_URL", "https://api.perplexity.ai"),
        model=_optional_env("PERPLEXITY_MODEL", "sonar"),
        recency=_optional_env("PERPLEXITY_RECENCY", "week"),
        timeout_s=_optional_env_float("RETRIEVAL_TIMEOUT_S", 30.0),
    )

    llm = LLMConfig(
        api_key=_optional_env("GROQ_API_KEY"),
        model=_optional_env("LLM_MODEL", "llama-3.3-70b-versatile"),
        timeout_s=_optional_env_float("LLM_TIMEOUT_S", 60.0),
        generation_temperature=_optional_env_float("GENERATION_TEMPERATURE", 0.7),
        adjudication_temperature=_optional_env_float("ADJUDICATION_TEMPERATURE", 0.1),
    )

    abi_path = _optional_env("CONTRACT_ABI_PATH")
    chain = ChainConfig(
        rpc_url=_optional_env("RPC_URL"),
        private_key=_optional_env("PRIVATE_KEY"),
        contract_address=_optional_env("CONTRACT_ADDRESS"),
        abi_path=Path(abi_path) if abi_path else DEFAULT_ABI_PATH,
        receipt_timeout_s=_optional_env_float("RECEIPT_TIMEOUT_S", 180.0),
    )

    server = ServerConfig(
        host=_optional_env("HOST", "0.0.0.0"),
        port=_optional_env_int("PORT", 4000),
    )

    feed = FeedConfig(redis_url=_optional_env("REDIS_URL"))

    return Settings(
        retrieval=retrieval,
        llm=llm,
        chain=chain,
        server=server,
        feed=feed,
    )
