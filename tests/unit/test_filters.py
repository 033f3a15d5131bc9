"""
Unit Tests for delivery search, filters and pagination
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from tracker.core.filters import (
    filter_by_date_range,
    filter_by_delivery_person,
    filter_by_status,
    filter_by_window,
    page_numbers,
    paginate,
    search_deliveries,
    sort_by_created,
    window_start,
)


@pytest.fixture
def deliveries(delivery_factory, now):
    return [
        delivery_factory(id='1', reference='DLV-20240315-0001', recipientName='Amira', status='pending',
                         createdAt=now - timedelta(hours=2)),
        delivery_factory(id='2', reference='DLV-20240312-0002', recipientName='Youssef', status='delivered',
                         recipientPhone='98765432', ownerEmail='shop@boutique.tn',
                         products=[{'name': 'Olive Oil', 'quantity': 2}],
                         assignedDeliveryGuy='courier-1', createdAt=now - timedelta(days=3)),
        delivery_factory(id='3', reference='DLV-20240201-0003', recipientName='Sami', status='returned',
                         recipientEmail=None, assignedDeliveryGuy='courier-2',
                         createdAt=(now - timedelta(days=40)).isoformat()),
        delivery_factory(id='4', reference='DLV-ABCDEF12', recipientName='Leila', status='in-transit',
                         createdAt=None),
    ]


def ids(records):
    return [r['id'] for r in records]


class TestWindowStart:
    """Test date window boundaries"""

    def test_today(self, now):
        assert window_start('today', now) == datetime(2024, 3, 15, tzinfo=timezone.utc)

    def test_week(self, now):
        assert window_start('week', now) == datetime(2024, 3, 8, tzinfo=timezone.utc)

    def test_month(self, now):
        assert window_start('month', now) == datetime(2024, 2, 15, tzinfo=timezone.utc)

    def test_month_clamps_short_months(self):
        assert window_start('month', datetime(2024, 3, 31, 8, tzinfo=timezone.utc)) == \
            datetime(2024, 2, 29, tzinfo=timezone.utc)

    def test_month_across_year(self):
        assert window_start('month', datetime(2024, 1, 10, tzinfo=timezone.utc)) == \
            datetime(2023, 12, 10, tzinfo=timezone.utc)

    def test_other_timezone(self):
        tunis = timezone(timedelta(hours=1))
        now = datetime(2024, 3, 14, 23, 30, tzinfo=timezone.utc)
        assert window_start('today', now, tunis) == datetime(2024, 3, 15, tzinfo=tunis)

    def test_unknown_window(self, now):
        with pytest.raises(ValueError):
            window_start('year', now)


class TestSearch:
    """Test free-text search"""

    def test_empty_term_returns_everything(self, deliveries):
        assert ids(search_deliveries(deliveries, '')) == ['1', '2', '3', '4']

    def test_reference_case_insensitive(self, deliveries):
        assert ids(search_deliveries(deliveries, 'dlv-20240312')) == ['2']

    def test_recipient_name(self, deliveries):
        assert ids(search_deliveries(deliveries, 'LEILA')) == ['4']

    def test_phone(self, deliveries):
        assert ids(search_deliveries(deliveries, '98765')) == ['2']

    def test_product_name(self, deliveries):
        assert ids(search_deliveries(deliveries, 'olive')) == ['2']

    def test_owner_email_only_when_requested(self, deliveries):
        assert search_deliveries(deliveries, 'boutique') == []
        assert ids(search_deliveries(deliveries, 'boutique', include_owner=True)) == ['2']


class TestFilters:
    """Test status, date and delivery person filters"""

    def test_status_all(self, deliveries):
        assert len(filter_by_status(deliveries, 'all')) == 4

    def test_status(self, deliveries):
        assert ids(filter_by_status(deliveries, 'delivered')) == ['2']

    def test_window_today(self, deliveries, now):
        assert ids(filter_by_window(deliveries, 'today', now)) == ['1']

    def test_window_week(self, deliveries, now):
        assert ids(filter_by_window(deliveries, 'week', now)) == ['1', '2']

    def test_window_excludes_missing_timestamps(self, deliveries, now):
        assert '4' not in ids(filter_by_window(deliveries, 'month', now))

    def test_window_all(self, deliveries, now):
        assert len(filter_by_window(deliveries, 'all', now)) == 4

    def test_date_range_end_is_inclusive(self, deliveries):
        assert ids(filter_by_date_range(deliveries, date(2024, 3, 12), date(2024, 3, 12))) == ['2']

    def test_date_range_start_only(self, deliveries):
        assert ids(filter_by_date_range(deliveries, start='2024-03-01')) == ['1', '2']

    def test_date_range_none(self, deliveries):
        assert len(filter_by_date_range(deliveries)) == 4

    def test_delivery_person(self, deliveries):
        assert ids(filter_by_delivery_person(deliveries, 'courier-2')) == ['3']
        assert ids(filter_by_delivery_person(deliveries, 'all')) == ['2', '3']

    def test_sort_by_created(self, deliveries):
        shuffled = [deliveries[3], deliveries[2], deliveries[0], deliveries[1]]
        assert ids(sort_by_created(shuffled)) == ['1', '2', '3', '4']
        assert ids(sort_by_created(shuffled, descending=False)) == ['3', '2', '1', '4']


class TestPagination:
    """Test pagination"""

    def test_first_page(self):
        page = paginate(list(range(25)), page=1, per_page=10)
        assert page.items == list(range(10))
        assert page.total_pages == 3
        assert (page.first_index, page.last_index) == (1, 10)

    def test_last_page(self):
        page = paginate(list(range(25)), page=3, per_page=10)
        assert page.items == [20, 21, 22, 23, 24]
        assert (page.first_index, page.last_index) == (21, 25)

    def test_page_past_the_end_is_clamped(self):
        assert paginate(list(range(5)), page=9, per_page=10).page == 1

    def test_empty(self):
        page = paginate([], page=1, per_page=10)
        assert page.items == []
        assert page.total_pages == 0
        assert (page.first_index, page.last_index) == (0, 0)
        assert page.pages == []

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            paginate([1], per_page=0)

    def test_as_dict(self):
        data = paginate([1, 2, 3], page=2, per_page=2).as_dict()
        assert data['items'] == [3]
        assert data['showingFrom'] == 3
        assert data['totalPages'] == 2

    @pytest.mark.parametrize("current,total,expected", [
        (1, 3, [1, 2, 3]),
        (1, 10, [1, 2, 3, 4, 5]),
        (3, 10, [1, 2, 3, 4, 5]),
        (6, 10, [4, 5, 6, 7, 8]),
        (9, 10, [6, 7, 8, 9, 10]),
        (10, 10, [6, 7, 8, 9, 10]),
    ])
    def test_page_numbers(self, current, total, expected):
        assert page_numbers(current, total) == expected
