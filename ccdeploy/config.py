"""Configuration management using msgspec Struct."""

from __future__ import annotations

import argparse
import os
from enum import Enum

import msgspec


class Network(str, Enum):
    """The two disjoint networks a seed can derive keys for."""

    MAINNET = "mainnet"
    TESTNET = "testnet"

    @property
    def coin_type(self) -> int:
        """SLIP-44 coin type used in the key derivation path."""
        return 919 if self is Network.MAINNET else 1


class NetworkConfiguration(msgspec.Struct, frozen=True):
    """Public endpoints and identifiers of a network."""

    grpc_url: str
    grpc_port: int
    genesis_hash: str
    name: str
    wallet_proxy_url: str
    ccd_scan_url: str

    @property
    def chain_id(self) -> str:
        return format_chain_id(self.genesis_hash)


MAINNET = NetworkConfiguration(
    grpc_url="https://grpc.mainnet.concordium.software",
    grpc_port=20000,
    genesis_hash="9dd9ca4d19e9393877d2c44b70f89acbfc0883c2243e5eeaecc0d1cd0503f478",
    name="Concordium Mainnet",
    wallet_proxy_url="https://wallet-proxy.mainnet.concordium.software",
    ccd_scan_url="https://ccdscan.io/",
)

TESTNET = NetworkConfiguration(
    grpc_url="https://grpc.testnet.concordium.com",
    grpc_port=20000,
    genesis_hash="4221332d34e1694168c2a0c0b3fd0f273809612cb13d000d5c2e00e85f50f796",
    name="Concordium Testnet",
    wallet_proxy_url="https://wallet-proxy.testnet.concordium.com",
    ccd_scan_url="https://testnet.ccdscan.io/",
)


def get_network_configuration(network: Network) -> NetworkConfiguration:
    """Return the endpoints of ``network``."""
    return MAINNET if network is Network.MAINNET else TESTNET


def format_chain_id(genesis_hash: str) -> str:
    """Format a CAIP-2 chain id (``ccd:`` plus the first 32 hex characters)."""
    return f"ccd:{genesis_hash[:32]}"


class NodeEndpoint(msgspec.Struct, frozen=True):
    """Where to submit transactions."""

    host: str
    port: int
    secure: bool = True

    @property
    def base_url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}:{self.port}"


class Config(msgspec.Struct, frozen=True):
    """Application configuration using msgspec Struct.

    A Config is passed explicitly into every pipeline call; there is no
    process-wide configuration state.
    """

    # Network selection
    network: Network = Network.TESTNET

    # Node endpoint
    node_host: str = "wallet-proxy.testnet.concordium.com"
    node_port: int = 443
    node_secure: bool = True

    # Submission timing (seconds)
    finalization_timeout: float = 10.0
    poll_interval: float = 1.0
    connect_timeout: float = 15.0

    # Minutes from submission time until the transaction expires
    transaction_expiry_minutes: int = 16

    # Key derivation indexes
    identity_provider_index: int = 0
    identity_index: int = 0
    credential_counter: int = 0

    # ID app session handling
    require_session_topic: bool = False

    # HTTP server settings
    host: str = "127.0.0.1"
    port: int = 8080

    # Logging
    log_level: str = "INFO"

    # Metrics settings
    metrics_host: str = "127.0.0.1"
    metrics_port: int = 8081

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        for name in ("node_port", "port", "metrics_port"):
            value = getattr(self, name)
            if value < 1 or value > 65535:
                raise ValueError(f"{name} must be between 1 and 65535, got {value}")

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got {self.log_level}")

        if not self.node_host:
            raise ValueError("node_host must not be empty")

        if self.finalization_timeout <= 0:
            raise ValueError(
                f"finalization_timeout must be positive, got {self.finalization_timeout}"
            )
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be positive, got {self.connect_timeout}")

        if self.transaction_expiry_minutes < 1:
            raise ValueError(
                "transaction_expiry_minutes must be at least 1, "
                f"got {self.transaction_expiry_minutes}"
            )

        for name in ("identity_provider_index", "identity_index", "credential_counter"):
            value = getattr(self, name)
            if value < 0 or value >= 2**31:
                raise ValueError(f"{name} must be between 0 and 2**31 - 1, got {value}")

    @property
    def normalized_log_level(self) -> str:
        """Return normalized uppercase log level."""
        return self.log_level.upper()

    @property
    def node_endpoint(self) -> NodeEndpoint:
        return NodeEndpoint(host=self.node_host, port=self.node_port, secure=self.node_secure)

    @property
    def network_configuration(self) -> NetworkConfiguration:
        return get_network_configuration(self.network)


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="ccdeploy",
        allow_abbrev=False,
        description="ccdeploy - sign and submit credential deployment transactions",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--network",
        choices=[n.value for n in Network],
        default=Network.TESTNET.value,
        help="Network to derive keys for and submit to",
    )
    parser.add_argument("--node-host", default=None, help="Node gateway host")
    parser.add_argument("--node-port", type=int, default=443, help="Node gateway port")
    parser.add_argument(
        "--node-insecure",
        action="store_true",
        default=False,
        help="Connect to the node without TLS",
    )
    parser.add_argument(
        "--finalization-timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for finalization",
    )
    parser.add_argument(
        "--poll-interval", type=float, default=1.0, help="Seconds between status polls"
    )
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=15.0,
        help="Seconds to wait when connecting to the node",
    )
    parser.add_argument(
        "--expiry-minutes",
        type=int,
        default=16,
        help="Transaction expiry, in minutes from submission",
    )
    parser.add_argument("--identity-provider-index", type=int, default=0)
    parser.add_argument("--identity-index", type=int, default=0)
    parser.add_argument("--credential-counter", type=int, default=0)
    parser.add_argument(
        "--require-session-topic",
        action="store_true",
        default=False,
        help="Reject ID app session requests without a topic",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API", allow_abbrev=False)
    serve.add_argument("--host", default="127.0.0.1", help="HTTP server host")
    serve.add_argument("-p", "--port", type=int, default=8080, help="HTTP server port")
    serve.add_argument("--metrics-host", default="127.0.0.1", help="Metrics server host")
    serve.add_argument("--metrics-port", type=int, default=8081, help="Metrics server port")

    deploy = commands.add_parser(
        "deploy", help="Sign and submit one credential deployment", allow_abbrev=False
    )
    deploy.add_argument(
        "--payload", required=True, help="Path to the credential deployment JSON"
    )
    deploy.add_argument(
        "--seed-phrase-file",
        default=None,
        help="File holding the seed phrase (prompted on the terminal when omitted)",
    )
    deploy.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Sign only and print the serialized transaction",
    )

    keys = commands.add_parser(
        "keys", help="Derive the account key pair for a seed phrase", allow_abbrev=False
    )
    keys.add_argument("--account-index", type=int, default=0)
    keys.add_argument(
        "--seed-phrase-file",
        default=None,
        help="File holding the seed phrase (prompted on the terminal when omitted)",
    )
    keys.add_argument(
        "--lookup",
        action="store_true",
        default=False,
        help="List the accounts holding the derived public key",
    )

    return parser


def get_config(argv: list[str] | None = None) -> tuple[Config, argparse.Namespace]:
    """Parse command line arguments and return configuration and the parsed args."""
    args = build_parser().parse_args(argv)
    network = Network(args.network)

    config_dict: dict[str, object] = {
        "network": network.value,
        "node_host": args.node_host or _default_node_host(network),
        "node_port": args.node_port,
        "node_secure": not args.node_insecure,
        "finalization_timeout": args.finalization_timeout,
        "poll_interval": args.poll_interval,
        "connect_timeout": args.connect_timeout,
        "transaction_expiry_minutes": args.expiry_minutes,
        "identity_provider_index": args.identity_provider_index,
        "identity_index": args.identity_index,
        "credential_counter": args.credential_counter,
        "require_session_topic": args.require_session_topic,
        "log_level": args.log_level,
    }
    if args.command == "serve":
        config_dict.update(
            host=args.host,
            port=args.port,
            metrics_host=args.metrics_host,
            metrics_port=args.metrics_port,
        )

    try:
        config = msgspec.convert(config_dict, Config)
    except msgspec.ValidationError as e:
        raise ValueError(f"Configuration validation error: {e}")

    return config, args


def _default_node_host(network: Network) -> str:
    url = get_network_configuration(network).wallet_proxy_url
    return url.removeprefix("https://")


def get_config_from_env() -> Config:
    """Load configuration from CCDEPLOY_* environment variables (ASGI workers)."""
    network = Network(os.getenv("CCDEPLOY_NETWORK", Network.TESTNET.value))
    config_dict: dict[str, object] = {
        "network": network.value,
        "node_host": os.getenv("CCDEPLOY_NODE_HOST", _default_node_host(network)),
        "node_port": int(os.getenv("CCDEPLOY_NODE_PORT", "443")),
        "node_secure": os.getenv("CCDEPLOY_NODE_SECURE", "true").lower() != "false",
        "finalization_timeout": float(os.getenv("CCDEPLOY_FINALIZATION_TIMEOUT", "10")),
        "poll_interval": float(os.getenv("CCDEPLOY_POLL_INTERVAL", "1")),
        "connect_timeout": float(os.getenv("CCDEPLOY_CONNECT_TIMEOUT", "15")),
        "transaction_expiry_minutes": int(os.getenv("CCDEPLOY_EXPIRY_MINUTES", "16")),
        "identity_provider_index": int(os.getenv("CCDEPLOY_IDENTITY_PROVIDER_INDEX", "0")),
        "identity_index": int(os.getenv("CCDEPLOY_IDENTITY_INDEX", "0")),
        "credential_counter": int(os.getenv("CCDEPLOY_CREDENTIAL_COUNTER", "0")),
        "require_session_topic": os.getenv("CCDEPLOY_REQUIRE_SESSION_TOPIC", "false").lower()
        == "true",
        "host": os.getenv("CCDEPLOY_HOST", "127.0.0.1"),
        "port": int(os.getenv("CCDEPLOY_PORT", "8080")),
        "log_level": os.getenv("CCDEPLOY_LOG_LEVEL", "INFO"),
        "metrics_host": os.getenv("CCDEPLOY_METRICS_HOST", "127.0.0.1"),
        "metrics_port": int(os.getenv("CCDEPLOY_METRICS_PORT", "8081")),
    }

    try:
        config = msgspec.convert(config_dict, Config)
    except msgspec.ValidationError as e:
        raise ValueError(f"Configuration validation error: {e}")

    return config


def store_config_in_env(config: Config) -> None:
    """Store configuration in environment variables for worker processes."""
    values = {
        "CCDEPLOY_NETWORK": config.network.value,
        "CCDEPLOY_NODE_HOST": config.node_host,
        "CCDEPLOY_NODE_PORT": str(config.node_port),
        "CCDEPLOY_NODE_SECURE": "true" if config.node_secure else "false",
        "CCDEPLOY_FINALIZATION_TIMEOUT": str(config.finalization_timeout),
        "CCDEPLOY_POLL_INTERVAL": str(config.poll_interval),
        "CCDEPLOY_CONNECT_TIMEOUT": str(config.connect_timeout),
        "CCDEPLOY_EXPIRY_MINUTES": str(config.transaction_expiry_minutes),
        "CCDEPLOY_IDENTITY_PROVIDER_INDEX": str(config.identity_provider_index),
        "CCDEPLOY_IDENTITY_INDEX": str(config.identity_index),
        "CCDEPLOY_CREDENTIAL_COUNTER": str(config.credential_counter),
        "CCDEPLOY_REQUIRE_SESSION_TOPIC": "true" if config.require_session_topic else "false",
        "CCDEPLOY_HOST": config.host,
        "CCDEPLOY_PORT": str(config.port),
        "CCDEPLOY_LOG_LEVEL": config.log_level,
        "CCDEPLOY_METRICS_HOST": config.metrics_host,
        "CCDEPLOY_METRICS_PORT": str(config.metrics_port),
    }
    os.environ.update(values)
