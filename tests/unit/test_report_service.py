"""
Unit tests for composition reports and the cache layer.
"""

import pytest
from decimal import Decimal

from wms.exceptions import NotFoundError
from wms.models import CompositionReport
from wms.services import composition_service, report_service
from wms.services.cache_service import CacheService


@pytest.fixture
def composition(session, stocked_hierarchy, pallets):
    return composition_service.save_composition({
        'name': 'Pedido 2001',
        'products': [{
            'product_id': stocked_hierarchy['product'].id,
            'packaging_type_id': stocked_hierarchy['box'].id,
            'quantity': 9,
        }],
    }, session, user_id=1)


class TestGenerateReport:
    """Tests for generate_report."""

    def test_report_persisted(self, session, composition):
        report = report_service.generate_report(composition.id, session, user_id=4)

        stored = session.get(CompositionReport, report.id)
        assert stored.generated_by == 4
        assert stored.report_type == 'detailed'
        assert stored.title.endswith('Pedido 2001')
        assert stored.report_data['composition_id'] == composition.id
        assert stored.report_data['metrics']['overall_efficiency'] == '0.09'
        assert stored.report_data['metrics']['weight_utilization'] == '0.108'

    def test_low_efficiency_rated_poor(self, session, composition):
        report = report_service.generate_report(composition.id, session, user_id=4)
        summary = report.report_data['executive_summary']

        assert summary['overall_rating'] == 'poor'
        assert summary['major_issues'] == []
        assert [m['status'] for m in summary['key_metrics']] == ['below', 'below']

    def test_violations_become_critical_recommendations(self, session, stocked_hierarchy, pallets):
        overloaded = composition_service.save_composition({
            'name': 'Sobrecargado',
            'constraints': {'max_weight': 10},
            'products': [{
                'product_id': stocked_hierarchy['product'].id,
                'packaging_type_id': stocked_hierarchy['box'].id,
                'quantity': 9,
            }],
        }, session, user_id=1)

        report = report_service.generate_report(overloaded.id, session, user_id=1)
        recommendations = report.report_data['recommendations']

        assert recommendations[0]['priority'] == 'critical'
        assert recommendations[0]['action_required'] is True
        assert report.report_data['executive_summary']['major_issues']

    def test_metrics_omitted_on_request(self, session, composition):
        report = report_service.generate_report(
            composition.id, session, user_id=4, include_metrics=False, include_recommendations=False
        )

        assert report.report_data['metrics'] is None
        assert report.report_data['recommendations'] == []

    def test_unknown_composition(self, session):
        with pytest.raises(NotFoundError):
            report_service.generate_report(999, session, user_id=1)

    def test_get_unknown_report(self, session):
        with pytest.raises(NotFoundError):
            report_service.get_report(999, session)


class TestRenderReportPdf:
    """Tests for render_report_pdf."""

    def test_pdf_bytes(self, session, composition):
        report = report_service.generate_report(composition.id, session, user_id=4)

        buffer = report_service.render_report_pdf(report, business_info={'name': 'Depósito Central'})

        assert buffer.getvalue().startswith(b'%PDF')

    def test_markup_characters_in_user_text(self, session, stocked_hierarchy, pallets):
        """Test that names with < and & are printed as text, not parsed as markup."""
        composition = composition_service.save_composition({
            'name': 'Carga <A & B>',
            'products': [{
                'product_id': stocked_hierarchy['product'].id,
                'packaging_type_id': stocked_hierarchy['box'].id,
                'quantity': 1,
            }],
        }, session, user_id=1)
        report = report_service.generate_report(composition.id, session, user_id=1)

        buffer = report_service.render_report_pdf(report, business_info={'name': 'Depósito <Norte> & Cía'})

        assert buffer.getvalue().startswith(b'%PDF')


class TestCacheService:
    """Tests for CacheService with Redis disabled."""

    def test_memoize_calls_loader_when_disabled(self, app):
        cache = CacheService(app)
        calls = []

        def loader():
            calls.append(1)
            return {'value': Decimal('1.5')}

        assert cache.is_available() is False
        assert cache.memoize('packaging', 'product:1:hierarchy', loader) == {'value': Decimal('1.5')}
        assert cache.memoize('packaging', 'product:1:hierarchy', loader) == {'value': Decimal('1.5')}
        assert len(calls) == 2

    def test_serialization_keeps_decimals(self, app):
        cache = CacheService(app)

        raw = cache._serialize({'qty': Decimal('0.100'), 'items': [Decimal('12')]})

        assert cache._deserialize(raw) == {'qty': Decimal('0.100'), 'items': [Decimal('12')]}
