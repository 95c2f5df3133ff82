"""
Unit Tests - Availability Classifier and Alert Record
"""
from datetime import datetime

import pytest

from src.database.models import StockState
from src.inventory.alerts import AlertRecord, unique_ids
from src.inventory.availability import classify, coerce_quantity, compute_available


class TestClassify:
    
    @pytest.mark.parametrize(
        "stock,reserved,threshold,available,state",
        [
            (10, 8, 5, 2, StockState.LOW),
            (5, 5, 5, 0, StockState.OUT),
            (20, 0, 5, 20, StockState.OK),
            (3, 5, 5, -2, StockState.OUT),
            (5, 0, 5, 5, StockState.LOW),
            (6, 0, 5, 6, StockState.OK),
            (1, 0, 0, 1, StockState.OK),
        ],
    )
    def test_states(self, stock, reserved, threshold, available, state):
        result = classify(stock, reserved, threshold)
        
        assert result.available == available
        assert result.state is state
    
    def test_missing_values_count_as_zero(self):
        result = classify(None, None, None)
        
        assert result.available == 0
        assert result.threshold == 0
        assert result.state is StockState.OUT
    
    def test_malformed_values_count_as_zero(self):
        assert coerce_quantity("abc") == 0
        assert coerce_quantity(True) == 0
        assert coerce_quantity("7") == 7
        assert coerce_quantity(4.9) == 4
        assert compute_available("12", None) == 12


class TestAlertRecord:
    
    def test_same_state_is_a_no_op(self):
        record = AlertRecord(state=StockState.LOW, low_notified_at=datetime(2024, 1, 1))
        
        assert record.transition_to(StockState.LOW, datetime(2024, 2, 1)) is record
    
    def test_low_and_out_stamp_their_own_timestamp(self):
        at = datetime(2024, 2, 1)
        
        low = AlertRecord().transition_to(StockState.LOW, at)
        out = low.transition_to(StockState.OUT, datetime(2024, 2, 2))
        
        assert low.state is StockState.LOW and low.low_notified_at == at
        assert out.state is StockState.OUT
        assert out.low_notified_at == at
        assert out.out_notified_at == datetime(2024, 2, 2)
    
    def test_recovery_keeps_history(self):
        record = AlertRecord(state=StockState.OUT, out_notified_at=datetime(2024, 1, 1))
        
        recovered = record.transition_to(StockState.OK, datetime(2024, 3, 1))
        
        assert recovered.state is StockState.OK
        assert recovered.out_notified_at == datetime(2024, 1, 1)


def test_unique_ids_deduplicates_in_order():
    a = "6f1c2a4e-8d0f-4c5e-9a57-0f8e2e1b9c11"
    b = "0b7e0a3c-1e3d-4a83-9b0a-2a6a4e0c4d22"
    
    assert [str(i) for i in unique_ids([a, b, a, "", None])] == [a, b]
