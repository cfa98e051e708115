"""Table-completion checks for XtabML documents.

Rows pair with statistics purely by position, so a table whose data does not
line up with its declared statistics cannot be interpreted and is rejected
outright.
"""

from typing import Optional

from xtabml.shared import CellPolicy, StructuralError, get_logger
from xtabml.tree.model import Table


class TableValidator:
    """Checks a finished table against the row/statistic invariants.

    Row count divisibility and per-row series counts are always enforced.
    Equal cell counts across the series of a row are enforced only under
    ``CellPolicy.STRICT``.
    """

    def __init__(
        self,
        policy: CellPolicy = CellPolicy.STRICT,
        correlation_id: Optional[str] = None
    ) -> None:
        self.policy = policy
        self.logger = get_logger(__name__, correlation_id, "table_validator")

    def validate(self, table: Table) -> None:
        """Validate a completed table.

        Args:
            table: Table frozen at its closing event

        Raises:
            StructuralError: Naming the table when an invariant is violated
        """
        statistic_count = len(table.statistics)
        rows = table.data.rows

        if statistic_count and len(rows) % statistic_count != 0:
            raise StructuralError(
                f"Incorrect number of rows: {len(rows)} data rows cannot be "
                f"divided evenly among {statistic_count} statistics",
                table=table.label,
            )

        for row_index, row in enumerate(rows):
            if len(row.series) != statistic_count:
                raise StructuralError(
                    f"Row {row_index} has {len(row.series)} series but "
                    f"{statistic_count} statistics are declared",
                    table=table.label,
                )
            if self.policy is CellPolicy.STRICT and len(set(row.cell_counts)) > 1:
                raise StructuralError(
                    f"Row {row_index} has unequal cell counts per statistic: "
                    f"{row.cell_counts}",
                    table=table.label,
                )

        self.logger.debug(
            "Table validated",
            extra={
                "table": table.label,
                "row_count": len(rows),
                "statistic_count": statistic_count,
            }
        )
