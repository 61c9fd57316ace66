"""Tests for iamcompose.config — STS detection runs against moto."""
import pytest
from botocore.exceptions import ClientError, NoCredentialsError
from unittest.mock import MagicMock

from iamcompose.config import AnalyzerConfig, detect_home_account, load_config

# moto's default account id
MOTO_ACCOUNT = "123456789012"


def test_config_defaults():
    config = AnalyzerConfig()
    assert config.home_account is None
    assert config.strict is False


@pytest.mark.parametrize("bad", ["1234", "abcdefghijkl", "1111111111111", ""])
def test_config_rejects_invalid_account(bad):
    with pytest.raises(ValueError, match="home account"):
        AnalyzerConfig(home_account=bad)


def test_detect_home_account_with_moto(moto_sts):
    assert detect_home_account(moto_sts) == MOTO_ACCOUNT


def test_detect_home_account_client_error_returns_none():
    sts = MagicMock()
    sts.get_caller_identity.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GetCallerIdentity"
    )
    assert detect_home_account(sts) is None


def test_detect_home_account_no_credentials_returns_none():
    sts = MagicMock()
    sts.get_caller_identity.side_effect = NoCredentialsError()
    assert detect_home_account(sts) is None


def test_load_config_explicit_account_wins(mocker):
    sts = mocker.MagicMock()
    config = load_config(home_account="111111111111", strict=True, sts_client=sts)
    assert config == AnalyzerConfig(home_account="111111111111", strict=True)
    sts.get_caller_identity.assert_not_called()


def test_load_config_detects_account(moto_sts):
    assert load_config(sts_client=moto_sts).home_account == MOTO_ACCOUNT


def test_load_config_without_sources():
    assert load_config() == AnalyzerConfig()
