from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from apiexplorer.classifier.response_classifier import classify, row_sequence
from apiexplorer.connections.models import Connection
from apiexplorer.errors import ReportFetchError, ReportUnavailableError
from apiexplorer.query.models import KeyValue, QueryRequest
from apiexplorer.query.orchestrator import QueryOrchestrator

logger = logging.getLogger(__name__)

ORDERS_PATH = "/orders"
TOP_PRODUCTS = 10


class FinancialReportInput(BaseModel):
    start_date: str = Field(min_length=1)   # yyyy-MM-dd
    end_date: str = Field(min_length=1)
    status: str = Field(min_length=1)       # comma-separated WooCommerce order statuses


@dataclass
class ProductSales:
    product_id: Any
    name: str
    quantity: int = 0
    total_revenue: float = 0.0


@dataclass
class FinancialReport:
    gross_revenue: float = 0.0
    total_orders: int = 0
    average_ticket: float = 0.0
    top_selling_products: List[ProductSales] = field(default_factory=list)


def _money(value: Any) -> float:
    # WooCommerce sends monetary amounts as strings.
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _quantity(value: Any) -> int:
    try:
        return int(float(value or 0))
    except (TypeError, ValueError, OverflowError):
        return 0


def calculate_financial_metrics(orders: Any) -> FinancialReport:
    """
    Revenue, order count, average ticket and the best-selling products
    (by quantity, top 10) from a list of WooCommerce orders.
    """
    if not isinstance(orders, list) or not orders:
        return FinancialReport()

    gross_revenue = sum(_money(o.get("total")) for o in orders if isinstance(o, dict))
    total_orders = len(orders)

    products: Dict[Any, ProductSales] = {}
    for order in orders:
        if not isinstance(order, dict):
            continue
        items = order.get("line_items")
        if not isinstance(items, list):
            continue
        for item in items:
            if not isinstance(item, dict):
                continue
            pid = item.get("product_id")
            if isinstance(pid, (list, dict)):
                continue
            entry = products.setdefault(pid, ProductSales(product_id=pid, name=item.get("name", "")))
            entry.quantity += _quantity(item.get("quantity"))
            entry.total_revenue += _money(item.get("total"))

    top = sorted(products.values(), key=lambda p: p.quantity, reverse=True)[:TOP_PRODUCTS]
    return FinancialReport(
        gross_revenue=gross_revenue,
        total_orders=total_orders,
        average_ticket=gross_revenue / total_orders if total_orders else 0.0,
        top_selling_products=top,
    )


class FinancialReportService:
    """Order metrics for WordPress/WooCommerce connections."""

    def __init__(self, orchestrator: QueryOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def generate(self, connection: Connection, params: FinancialReportInput) -> FinancialReport:
        """
        Raises:
            ReportUnavailableError: connection is not a WordPress connection.
            ReportFetchError:       the orders request failed.
        """
        if not connection.is_wordpress:
            raise ReportUnavailableError(
                "Financial reports are only available for WordPress connections."
            )

        request = QueryRequest(
            method="GET",
            path=ORDERS_PATH,
            params=[
                KeyValue(key="start_date", value=params.start_date),
                KeyValue(key="end_date", value=params.end_date),
                KeyValue(key="status", value=params.status),
            ],
        )
        envelope = await self._orchestrator.execute(connection, request, enrich=False)
        if envelope.error is not None:
            raise ReportFetchError(f"External API error: {envelope.error}")

        orders = row_sequence(classify(envelope.data))
        report = calculate_financial_metrics(orders)
        logger.info(
            "Financial report for %s: %d order(s), gross %.2f",
            connection.id, report.total_orders, report.gross_revenue,
        )
        return report
