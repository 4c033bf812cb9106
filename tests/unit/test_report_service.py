"""
Unit tests for report periods used by the bills export.
"""

import pytest
from datetime import datetime, timezone

from jewelbox.exceptions import ValidationError
from jewelbox.services.report_service import resolve_report_period


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestResolveReportPeriod:

    def test_monthly_wraps_year(self):
        window = resolve_report_period('monthly', now=_utc(2026, 12, 15, 9, 30))

        assert window.start == _utc(2026, 12, 1)
        assert window.end == _utc(2027, 1, 1)
        assert window.slug == 'December-2026'

    @pytest.mark.parametrize('now,start,end,slug', [
        (_utc(2026, 10, 18), _utc(2026, 10, 1), _utc(2027, 1, 1), 'Q4-2026'),
        (_utc(2026, 5, 2), _utc(2026, 4, 1), _utc(2026, 7, 1), 'Q2-2026'),
        (_utc(2026, 1, 1), _utc(2026, 1, 1), _utc(2026, 4, 1), 'Q1-2026'),
    ])
    def test_quarterly(self, now, start, end, slug):
        window = resolve_report_period('quarterly', now=now)

        assert (window.start, window.end, window.slug) == (start, end, slug)

    def test_custom_range_includes_last_day(self):
        window = resolve_report_period('custom', '2026-01-01', '2026-01-31')

        assert window.start == _utc(2026, 1, 1)
        assert window.end == _utc(2026, 2, 1)
        assert window.slug == '2026-01-01-to-2026-01-31'

    def test_open_ended_range(self):
        window = resolve_report_period(date_from='2026-03-01')

        assert window.start == _utc(2026, 3, 1)
        assert window.end is None
        assert window.label == '2026-03-01 to Present'

    def test_no_filter_exports_everything(self):
        window = resolve_report_period()

        assert window.start is None and window.end is None
        assert window.slug == 'All'

    @pytest.mark.parametrize('period,date_from,date_to', [
        ('weekly', None, None),
        (None, 'yesterday', None),
        (None, '2026-02-01', '2026-01-01'),
    ])
    def test_rejects_bad_parameters(self, period, date_from, date_to):
        with pytest.raises(ValidationError):
            resolve_report_period(period, date_from, date_to)
