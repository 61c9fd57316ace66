"""Run-wide configuration, loaded once before a batch starts."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

_ACCOUNT_ID_RE = re.compile(r"^\d{12}$")


@dataclass(frozen=True)
class AnalyzerConfig:
    """
    Read-only settings shared by every document in a run.

    *home_account* is the account trusted principals are compared against;
    ``None`` degrades the cross-account check to an Info diagnostic.
    *strict* escalates analyzer warnings to errors.
    """

    home_account: Optional[str] = None
    strict: bool = False

    def __post_init__(self) -> None:
        if self.home_account is not None and not _ACCOUNT_ID_RE.match(self.home_account):
            raise ValueError(
                f"Invalid home account id {self.home_account!r}: expected 12 digits."
            )


def detect_home_account(sts_client) -> Optional[str]:
    """
    Return the account id of the caller's credentials via GetCallerIdentity.

    Returns None (and logs a warning) when the call fails, so a missing or
    unauthorized credential set only disables the cross-account check.
    """
    try:
        account = sts_client.get_caller_identity()["Account"]
    except (ClientError, BotoCoreError) as exc:
        logger.warning("could not detect home account: %s", exc)
        return None
    logger.info("detected home account %s", account)
    return account


def load_config(
    home_account: Optional[str] = None,
    strict: bool = False,
    sts_client=None,
) -> AnalyzerConfig:
    """
    Build the run configuration.

    An explicit *home_account* wins; otherwise, when *sts_client* is given,
    the account is detected from the active credentials.

    Raises:
        ValueError: *home_account* is not a 12-digit account id.
    """
    if home_account is None and sts_client is not None:
        home_account = detect_home_account(sts_client)
    return AnalyzerConfig(home_account=home_account, strict=strict)
