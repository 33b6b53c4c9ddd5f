"""
Module: stock_kernel.db.types
Responsibility: The portable enum column type shared by the models.
Architecture position: Kernel > DB.  May be imported by models/.  MUST NOT
    import from models/, services/ or selectors/.

Invariants enforced:
    - Enum columns persist the member value as VARCHAR, never a native
      database enum, so new members need no migration.

Decimal precision is set once in ``Base.type_annotation_map``
(Numeric(38, 9) for every ``Mapped[Decimal]``).
"""

from enum import Enum

from sqlalchemy import Enum as SAEnum


def enum_type(enum_cls: type[Enum]) -> SAEnum:
    """
    Portable VARCHAR-backed column type for a str Enum.

    Values (not member names) are persisted; rows load back as members.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
