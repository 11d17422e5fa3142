"""Voximplant account balance and connectivity diagnostics."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import httpx

from callsync.schemas import BalanceOut, DiagnosticCheck, DiagnosticConfiguration, DiagnosticsOut
from callsync.services.adapters import describe_http_error
from callsync.services.errors import TransientProviderError
from callsync.services.voximplant_client import VoximplantClient

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "RUB"


def _zero_balance() -> BalanceOut:
    return BalanceOut(balance=Decimal("0"), currency=DEFAULT_CURRENCY)


async def account_balance(client: Optional[VoximplantClient] = None) -> BalanceOut:
    """Current account balance, zero when credentials are not configured."""
    client = client or VoximplantClient()
    if not client.configured:
        return _zero_balance()
    try:
        data = await client.get_account_info()
    except httpx.HTTPStatusError as exc:
        logger.error("Error fetching Voximplant balance: %s", describe_http_error(exc))
        raise TransientProviderError(
            "voximplant", describe_http_error(exc), status_code=exc.response.status_code
        ) from exc
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Error fetching Voximplant balance: %s", describe_http_error(exc))
        raise TransientProviderError("voximplant", describe_http_error(exc)) from exc
    result = data.get("result") if isinstance(data, dict) else None
    if not isinstance(result, dict) or result.get("balance") is None:
        return _zero_balance()
    return BalanceOut(balance=result["balance"], currency=result.get("currency") or DEFAULT_CURRENCY)


async def _account_check(client: VoximplantClient) -> DiagnosticCheck:
    try:
        data = await client.get_account_info()
    except (httpx.HTTPError, ValueError) as exc:
        return DiagnosticCheck(status="error", details=describe_http_error(exc))
    if isinstance(data, dict) and data.get("result"):
        return DiagnosticCheck(status="success", details="Connection established, account info retrieved")
    return DiagnosticCheck(status="failed", details=data)


async def _history_check(client: VoximplantClient) -> DiagnosticCheck:
    try:
        data = await client.get_call_history(None, None, count=1, with_records=False)
    except (httpx.HTTPError, ValueError) as exc:
        return DiagnosticCheck(status="error", details=describe_http_error(exc))
    result = data.get("result") if isinstance(data, dict) else None
    if not isinstance(result, list):
        return DiagnosticCheck(status="failed", details=data)
    return DiagnosticCheck(
        status="success",
        details=f"Retrieved {len(result)} records. Total count: {data.get('count')}",
        sample_data=result[0] if result else "No calls found",
    )


async def diagnose(client: Optional[VoximplantClient] = None) -> DiagnosticsOut:
    """Check credentials, then GetAccountInfo and a one-record GetCallHistory.

    Each check records its own outcome; a failing check never stops the next.
    ``report.configuration.error`` is set when credentials are missing and no
    request is made.
    """
    client = client or VoximplantClient()
    report = DiagnosticsOut(
        timestamp=datetime.now(timezone.utc),
        configuration=DiagnosticConfiguration(
            account_id_present=bool(client.account_id),
            api_key_present=bool(client.api_key),
            api_url=client.base_url,
        ),
        tests={
            "healthcheck": DiagnosticCheck(),
            "history": DiagnosticCheck(),
            "real_time": DiagnosticCheck(status="skipped", details="Requires manual call initiation"),
        },
    )
    if not client.configured:
        report.configuration.error = "Missing Voximplant credentials"
        return report
    report.tests["healthcheck"] = await _account_check(client)
    report.tests["history"] = await _history_check(client)
    logger.info(
        "Voximplant diagnostics: healthcheck=%s history=%s",
        report.tests["healthcheck"].status,
        report.tests["history"].status,
    )
    return report
