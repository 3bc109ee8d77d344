import sys
from pathlib import Path

import pytest

# Ensure project root on sys.path for direct execution.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from creditanchor import cli  # noqa: E402
from creditanchor.config import DEFAULT_GATEWAYS, Settings  # noqa: E402
from creditanchor.errors import InvalidParameters  # noqa: E402


def test_defaults_from_empty_environment():
    settings = Settings.from_env({})
    assert settings.gateways == DEFAULT_GATEWAYS
    assert settings.gateway_timeout == 30.0
    assert settings.registry_url is None
    assert settings.keys_dir == Path("keys")


def test_environment_values():
    settings = Settings.from_env(
        {
            "CREDITANCHOR_GATEWAYS": "https://a.test/ipfs/, https://b.test/ipfs/",
            "CREDITANCHOR_GATEWAY_TIMEOUT": "2.5",
            "CREDITANCHOR_REGISTRY_URL": "http://registry.test",
            "CREDITANCHOR_PRIVATE_KEY": "0x" + "11" * 32,
            "CREDITANCHOR_LOG_LEVEL": "debug",
        }
    )
    assert settings.gateways == ("https://a.test/ipfs/", "https://b.test/ipfs/")
    assert settings.gateway_timeout == 2.5
    assert settings.registry_url == "http://registry.test"
    assert settings.log_level == "DEBUG"
    # Secrets stay out of reprs and logs.
    assert "11" * 32 not in repr(settings)


def test_gateway_timeout_parsing():
    assert Settings.from_env({"CREDITANCHOR_GATEWAY_TIMEOUT": ""}).gateway_timeout is None
    with pytest.raises(InvalidParameters):
        Settings.from_env({"CREDITANCHOR_GATEWAY_TIMEOUT": "thirty"})


def test_cli_flags_override_settings():
    args = cli.build_parser().parse_args(
        ["--gateway", "https://x.test/", "--gateway", "https://y.test/", "--keys-dir", "k", "hash-envelope"]
    )
    settings = cli.settings_from_args(args, Settings())
    assert settings.gateways == ("https://x.test/", "https://y.test/")
    assert settings.keys_dir == Path("k")


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-s", "--capture=no"]))
