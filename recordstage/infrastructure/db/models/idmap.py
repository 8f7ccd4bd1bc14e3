"""
Surrogate key map model
"""

from sqlmodel import Field, SQLModel, UniqueConstraint


class IdMapEntry(SQLModel, table=True):
    """
    One (namespace, natural id) -> surrogate key assignment.

    The empty namespace holds keys for identifier-reference columns.
    """
    __tablename__ = "idmap"
    __table_args__ = (UniqueConstraint("table_name", "sk", name="uq_idmap_table_sk"),)

    table_name: str = Field(
        primary_key=True,
        max_length=255,
        description="Namespace of the natural id"
    )

    natural_id: str = Field(
        primary_key=True,
        description="Identifier as found in the source record"
    )

    sk: int = Field(
        nullable=False,
        description="Dense surrogate key within the namespace"
    )
