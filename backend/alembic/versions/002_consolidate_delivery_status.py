"""002: Consolidate delivery status codes from seven values to five.

    legacy                     new
    PENDING          0  ->  0  PENDING
    ASSIGNED         1  ->  1  ASSIGNED
    PICKED_UP        2  ->  2  OUT_FOR_DELIVERY
    OUT_FOR_DELIVERY 3  ->  2  OUT_FOR_DELIVERY
    DELIVERED        4  ->  3  DELIVERED
    FAILED           5  ->  4  FAILED
    CANCELLED        6  ->  4  FAILED

FAILED and CANCELLED are parked on temporary codes first so that no step
writes a code that a later step still has to read. PICKED_UP merges into
OUT_FOR_DELIVERY and CANCELLED into FAILED, so there is no downgrade.
"""

from alembic import op

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

TEMP_CANCELLED = 100
TEMP_FAILED = 101

# Applied in order
REMAP_STEPS = [
    (6, TEMP_CANCELLED),
    (5, TEMP_FAILED),
    (3, 2),
    (4, 3),
    (TEMP_CANCELLED, 4),
    (TEMP_FAILED, 4),
]


def upgrade() -> None:
    for old, new in REMAP_STEPS:
        op.execute(
            f"UPDATE delivery_orders SET delivery_status = {new} WHERE delivery_status = {old}"
        )


def downgrade() -> None:
    raise NotImplementedError(
        "Delivery status consolidation is one-way: PICKED_UP and CANCELLED were merged "
        "into other statuses and cannot be restored. Restore from a backup instead."
    )
