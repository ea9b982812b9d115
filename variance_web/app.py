"""
Rate variance web surface -- the two operator views over HTTP.

Responsibility:
    Exposes the receipt/bill view (rate correction plus closed-period
    adjustment) and the order/bill view (review marking) as
    redirect-after-post endpoints:

    GET  /receipt-bill   current IR/VB pairs plus whatever the last
                         redirect reported (progress, summary, error)
    POST /receipt-bill   one batch round, or a closed-period adjustment
                         when ``action=closed_period_adjustment``
    GET  /order-bill     PO/VB pairs under the location filter and
                         threshold overrides carried in the query
    POST /order-bill     one review-marking round

Architecture:
    Outer surface.  Every decision is delegated to ReconciliationService;
    this module only parses request parameters and renders responses.
    A POST always answers 303 with the next request's parameters in the
    query string: a continuation (``processing=true``) that the client
    re-posts, a terminal summary, or an ``error``.

Failure modes:
    - Page-level failures on GET are logged with exc_info and rendered as
      ``{"error": ...}``.
    - Failures on POST, infrastructure errors included, are logged and
      become an ``error`` redirect parameter; the order view keeps its
      filter and thresholds on every redirect.
    - Malformed summary parameters on GET degrade to empty values.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from variance_batch.domain.types import (
    NOT_FOUND_CODES,
    BatchVariant,
    RateCorrectionItem,
    ReviewMarkItem,
)
from variance_batch.driver import EmptySelectionError
from variance_config.schema import THRESHOLD_PARAMS
from variance_engines.types import OrderBillPair, ReceiptBillPair
from variance_kernel.domain.amounts import to_decimal
from variance_kernel.exceptions import (
    ClosedPeriodError,
    ParseError,
    PartialAdjustmentError,
)
from variance_kernel.logging_config import LogContext, get_logger
from variance_services.closed_period import AdjustmentRequest
from variance_services.reconciliation_service import ReconciliationService

logger = get_logger("web.app")

RECEIPT_BILL_PATH = "/receipt-bill"
ORDER_BILL_PATH = "/order-bill"
ADJUSTMENT_ACTION = "closed_period_adjustment"
CORRELATION_HEADER = "X-Correlation-ID"

# Query parameters the GET views echo back to the client.
_PROCESSING_PARAMS = (
    "selected_variances",
    "batch_index",
    "success_count",
    "error_count",
    "previous_errors",
    "previous_updated",
    "processing",
    "token_version",
    "variant",
)
_ADJUSTMENT_PARAMS = ("vbNumber", "jeNumber", "itemName", "adjustmentAmount", "savedVbId")


def _redirect(path: str, params: Mapping[str, str]) -> RedirectResponse:
    url = f"{path}?{urlencode(params)}" if params else path
    return RedirectResponse(url=url, status_code=303)


def _json_param(params: Mapping[str, Any], name: str) -> list[Any]:
    raw = params.get(name)
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("malformed_summary_param", extra={"param": name})
        return []
    return data if isinstance(data, list) else []


def _count_param(params: Mapping[str, Any], name: str) -> int:
    raw = params.get(name)
    if not raw:
        return 0
    try:
        return int(raw)
    except ValueError:
        logger.warning("malformed_summary_param", extra={"param": name})
        return 0


def _order_view_params(params: Mapping[str, Any]) -> dict[str, str]:
    """Filter and threshold parameters carried on every order view redirect."""
    kept = {}
    for name in ("location_filter", *THRESHOLD_PARAMS):
        value = params.get(name)
        if value:
            kept[name] = str(value)
    return kept


def _status(params: Mapping[str, Any]) -> dict[str, Any]:
    """What the previous redirect reported, in display form."""
    status: dict[str, Any] = {}
    if params.get("error"):
        status["error"] = params["error"]

    if params.get("processing") == "true":
        status["mode"] = "processing"
        status["continue_with"] = {
            name: params[name] for name in _PROCESSING_PARAMS if name in params
        }
    elif params.get("updateSuccess") == "true":
        errors = _json_param(params, "errors")
        codes = [err.get("code") for err in errors if isinstance(err, dict)]
        status.update({
            "mode": "summary",
            "success_count": _count_param(params, "successCount"),
            "error_count": _count_param(params, "errorCount"),
            "updated": _json_param(params, "updatedRecords"),
            "errors": errors,
            "closed_period_count": codes.count(ClosedPeriodError.code),
            "not_found_count": sum(1 for code in codes if code in NOT_FOUND_CODES),
        })
    elif params.get("adjustmentSuccess") == "true":
        status["mode"] = "adjustment"
    if params.get("adjustmentSuccess") == "true" or params.get("savedVbId"):
        status["adjustment"] = {
            name: params[name] for name in _ADJUSTMENT_PARAMS if name in params
        }
    return status


def _rate_correction_item(pair: ReceiptBillPair) -> RateCorrectionItem:
    return RateCorrectionItem(
        ir_id=pair.receipt.document_id,
        po_line_key=pair.info.po_line_key,
        new_rate=pair.bill.rate,
        ir_number=pair.receipt.number,
        item_name=pair.info.item_name,
        item_id=pair.info.item_id,
    )


def _review_item(pair: OrderBillPair) -> ReviewMarkItem:
    return ReviewMarkItem(
        po_id=pair.info.po_id,
        po_line_key=pair.info.po_line_key,
        po_number=pair.info.po_number,
        item_name=pair.info.item_name,
    )


def _receipt_bill_row(pair: ReceiptBillPair) -> dict[str, Any]:
    row = pair.to_dict()
    row["selection"] = _rate_correction_item(pair).to_wire()
    return row


def _order_bill_row(pair: OrderBillPair) -> dict[str, Any]:
    row = pair.to_dict()
    row["selection"] = _review_item(pair).to_wire()
    return row


def create_app(service: ReconciliationService) -> FastAPI:
    """Build the application around one reconciliation service."""
    app = FastAPI(
        title="Rate Variance Reconciliation",
        description="Review and correct rate variances between purchase orders, "
                    "item receipts and vendor bills",
        version="1.0.0",
    )
    app.state.service = service

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        with LogContext.bind(correlation_id=correlation_id):
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    def _run_round(
        variant: BatchVariant,
        params: Mapping[str, Any],
        path: str,
        preserved: dict[str, str],
    ) -> RedirectResponse:
        try:
            outcome = service.run_round(variant, params)
        except EmptySelectionError as exc:
            return _redirect(path, {**preserved, "error": str(exc)})
        except ParseError as exc:
            logger.error("batch_request_rejected", exc_info=True, extra={
                "variant": variant.value,
                "field": exc.field,
            })
            return _redirect(path, {**preserved, "error": str(exc)})
        except Exception as exc:
            logger.error("batch_round_failed", exc_info=True, extra={
                "variant": variant.value,
            })
            return _redirect(path, {**preserved, "error": str(exc)})
        return _redirect(path, {**preserved, **service.driver.redirect_params(outcome)})

    # -------------------------------------------------------------------------
    # Receipt / bill view
    # -------------------------------------------------------------------------

    @app.get(RECEIPT_BILL_PATH)
    def receipt_bill_page(request: Request):
        """
        List IR/VB rate variances.

        Echoes the mode reported by the previous redirect: ``processing``
        (with the parameters to re-post), ``summary`` or ``adjustment``.
        """
        params = request.query_params
        try:
            pairs = service.receipt_bill_pairs()
        except Exception as exc:
            logger.error("receipt_bill_page_failed", exc_info=True)
            return JSONResponse(status_code=500, content={"error": str(exc)})

        return {
            **_status(params),
            "pair_count": len(pairs),
            "pairs": [_receipt_bill_row(pair) for pair in pairs],
        }

    @app.post(RECEIPT_BILL_PATH)
    async def receipt_bill_submit(request: Request):
        """Run one rate correction round or a closed-period adjustment."""
        form = await request.form()
        params = {key: str(value) for key, value in form.items()}

        if params.get("action") == ADJUSTMENT_ACTION:
            return _adjust(params)
        return _run_round(BatchVariant.RATE_CORRECTION, params, RECEIPT_BILL_PATH, {})

    def _adjust(params: dict[str, str]) -> RedirectResponse:
        vb_number = params.get("vb_number", "")
        try:
            adjustment_request = AdjustmentRequest(
                vb_id=params.get("vb_id", ""),
                item_id=params.get("item_id", ""),
                vb_rate=to_decimal(params.get("vb_rate", "")),
                ir_rate=to_decimal(params.get("ir_rate", "")),
                vb_number=vb_number,
                item_name=params.get("item_name", ""),
            )
            result = service.adjust_closed_period(adjustment_request)
        except PartialAdjustmentError as exc:
            return _redirect(RECEIPT_BILL_PATH, {
                "error": f"Adjustment failed: {exc}",
                "vbNumber": vb_number,
                "savedVbId": exc.saved_vb_id,
                "adjustmentAmount": exc.adjustment_amount,
            })
        except Exception as exc:
            logger.error("closed_period_adjustment_failed", exc_info=True, extra={
                "vb_id": params.get("vb_id"),
            })
            return _redirect(RECEIPT_BILL_PATH, {
                "error": f"Adjustment failed: {exc}",
                "vbNumber": vb_number,
            })
        return _redirect(RECEIPT_BILL_PATH, result.to_params())

    # -------------------------------------------------------------------------
    # Order / bill view
    # -------------------------------------------------------------------------

    @app.get(ORDER_BILL_PATH)
    def order_bill_page(request: Request):
        """List PO/VB rate variances past the per-location thresholds."""
        params = request.query_params
        preserved = _order_view_params(params)
        try:
            config = service.config.with_threshold_overrides(params)
            pairs = service.order_bill_pairs(params.get("location_filter"), config)
        except Exception as exc:
            logger.error("order_bill_page_failed", exc_info=True, extra=preserved)
            return JSONResponse(
                status_code=400 if isinstance(exc, ValueError) else 500,
                content={"error": str(exc), **preserved},
            )

        return {
            **_status(params),
            **preserved,
            "thresholds": config.thresholds.as_params(),
            "location_filter": params.get("location_filter") or "all",
            "pair_count": len(pairs),
            "pairs": [_order_bill_row(pair) for pair in pairs],
        }

    @app.post(ORDER_BILL_PATH)
    async def order_bill_submit(request: Request):
        """Mark one window of selected PO lines as reviewed."""
        form = await request.form()
        params = {key: str(value) for key, value in form.items()}
        return _run_round(
            BatchVariant.REVIEW_MARK,
            params,
            ORDER_BILL_PATH,
            _order_view_params(params),
        )

    return app
