# tests/common/test_exceptions.py
"""
Тесты для доменных исключений.
"""

from __future__ import annotations

from courier_dispatch.common.exceptions import (
    AssignmentExistsError,
    AssignmentNotFoundError,
    DispatchError,
    DriverMismatchError,
    DriverNotFoundError,
    DriverUnavailableError,
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidTransitionError,
    OrderNotFoundError,
)


class TestExceptions:
    """Тесты иерархии исключений."""

    def test_status_codes(self) -> None:
        assert DispatchError("x").status_code == 500
        assert OrderNotFoundError(1).status_code == 404
        assert DriverNotFoundError("bob").status_code == 404
        assert AssignmentExistsError(1).status_code == 409
        assert InvalidTransitionError("pending", "delivered").status_code == 409
        assert DriverMismatchError(1, "bob").status_code == 403
        assert DuplicateEntityError("dup").status_code == 409
        assert DriverUnavailableError(2).status_code == 409

    def test_hierarchy(self) -> None:
        assert issubclass(OrderNotFoundError, EntityNotFoundError)
        assert issubclass(AssignmentNotFoundError, EntityNotFoundError)
        assert issubclass(InvalidTransitionError, ValueError)
        assert issubclass(EntityNotFoundError, DispatchError)

    def test_details(self) -> None:
        assert OrderNotFoundError(5).details == {"order_id": 5}
        assert AssignmentNotFoundError(3, field="id").details == {"id": 3}
        assert InvalidTransitionError("a", "b").details == {"current": "a", "requested": "b"}
        assert DispatchError("x").details == {}
        assert DriverUnavailableError(2).details == {"driver_id": 2}

    def test_message(self) -> None:
        error = InvalidTransitionError("pending", "delivered")

        assert error.message == str(error)
        assert "pending -> delivered" in error.message
