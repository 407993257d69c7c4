"""Stock reservation guard.

Two phases: an advisory ``check`` that re-reads live stock before payment, and
a ``commit`` that performs the compare-and-decrement at finalize time. Stock is
only ever mutated through ``StockPort.decrement``; there is no read-then-write
path.
"""

import logging
from typing import Sequence

from .domain import OrderLineItem, StockCheck, StockCommitResult, StockShortage
from .errors import ValidationError
from .ports import StockPort

logger = logging.getLogger("checkout.stock")


class StockReservationGuard:
    def __init__(self, stock: StockPort):
        self.stock = stock

    async def check(self, line_items: Sequence[OrderLineItem]) -> StockCheck:
        """Report lines whose requested quantity exceeds current stock.

        Purely advisory: nothing is reserved and nothing is written, so calling
        it any number of times leaves stock untouched.

        Args:
            line_items: Priced lines of the order.

        Returns:
            StockCheck: ``available`` False with the shortages when any line
            cannot be served.
        """
        # Lines of the same product draw on the same stock.
        requested = {}
        for item in line_items:
            requested[item.product_id] = requested.get(item.product_id, 0) + item.requested_quantity

        levels = await self.stock.read_stock(list(requested))
        shortages = []
        for product_id, wanted in requested.items():
            found = levels.get(product_id)
            if found is None:
                shortages.append(StockShortage(product_id, wanted, None))
                continue
            name, quantity = found
            if wanted > quantity:
                shortages.append(StockShortage(product_id, wanted, quantity, name))
        return StockCheck(available=not shortages, shortages=tuple(shortages))

    async def commit(self, line_items: Sequence[OrderLineItem]) -> StockCommitResult:
        """Decrement stock for every line with one batched conditional update.

        Lines whose condition fails because stock moved since the check are not
        decremented and come back in ``skipped``; callers must treat a result
        with skipped lines as a partial commit.

        Raises:
            ValidationError: On a line without product id or with a
                non-positive quantity. Nothing is decremented in that case.
        """
        pairs = []
        for item in line_items:
            if not item.product_id or not item.requested_quantity or item.requested_quantity < 0:
                raise ValidationError(
                    "Items must contain product id and quantity",
                    code="MALFORMED_STOCK_COMMIT",
                    fields=["product_id", "requested_quantity"],
                )
            pairs.append((item.product_id, item.requested_quantity))

        if not pairs:
            return StockCommitResult()

        results = await self.stock.decrement(pairs)

        applied = []
        skipped = []
        for item, ok in zip(line_items, results):
            if ok:
                applied.append(item.product_id)
            else:
                skipped.append(StockShortage(item.product_id, item.requested_quantity, None, item.product_name))

        if skipped:
            logger.error(
                "partial stock commit",
                extra={"applied": len(applied), "requested": len(pairs), "skipped": [s.product_id for s in skipped]},
            )
        else:
            logger.info("stock committed", extra={"applied": len(applied)})
        return StockCommitResult(applied=tuple(applied), skipped=tuple(skipped))
