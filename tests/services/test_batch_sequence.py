"""Daily batch SKU numbering from locked counter rows."""

from datetime import date

from garment_kernel.services.sequence_service import BatchSequenceService, format_batch_sku


class TestFormat:
    def test_zero_padded_number(self):
        assert format_batch_sku("PROD", date(2024, 3, 7), 4, 3) == "PROD-20240307-004"

    def test_number_wider_than_padding_is_kept(self):
        assert format_batch_sku("PROD", date(2024, 3, 7), 1234, 3) == "PROD-20240307-1234"

    def test_counter_name_is_per_day(self):
        assert BatchSequenceService.counter_name(date(2024, 3, 7)) == "batch_sku:20240307"


class TestCounter:
    def test_first_value_of_a_day_is_one(self, session):
        sequence = BatchSequenceService(session)
        assert sequence.current_value("batch_sku:20240101") is None
        assert sequence.next_value("batch_sku:20240101") == 1
        assert sequence.current_value("batch_sku:20240101") == 1

    def test_values_are_dense(self, session):
        sequence = BatchSequenceService(session)
        values = [sequence.next_value("batch_sku:20240101") for _ in range(4)]
        assert values == [1, 2, 3, 4]

    def test_days_are_independent(self, session):
        sequence = BatchSequenceService(session)
        sequence.next_value("batch_sku:20240101")
        sequence.next_value("batch_sku:20240101")
        assert sequence.next_value("batch_sku:20240102") == 1

    def test_custom_prefix_and_width(self, session):
        sequence = BatchSequenceService(session, prefix="LOT", width=5)
        assert sequence.next_batch_sku(date(2024, 1, 1)) == "LOT-20240101-00001"

    def test_rollback_returns_the_number(self, store):
        with store.session_scope() as session:
            BatchSequenceService(session).next_value("batch_sku:20240101")

        session = store.session()
        try:
            assert BatchSequenceService(session).next_value("batch_sku:20240101") == 2
            session.rollback()
            assert BatchSequenceService(session).next_value("batch_sku:20240101") == 2
        finally:
            session.rollback()
            session.close()
