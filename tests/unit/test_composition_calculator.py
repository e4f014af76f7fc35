"""
Unit tests for the composition calculator.
"""

import pytest
from decimal import Decimal

from wms.exceptions import ValidationViolation, ViolationKind, NotFoundError, NoSuitablePalletError
from wms.models import PalletStatus
from wms.services.composition_calculator import calculate_composition, validate_constraints


def _boxes(hierarchy, quantity):
    return [{'product_id': hierarchy['product'].id, 'packaging_type_id': hierarchy['box'].id, 'quantity': quantity}]


class TestCalculateInputs:
    """Input validation and pallet resolution."""

    def test_empty_products(self, session, pallets):
        with pytest.raises(ValidationViolation) as exc_info:
            calculate_composition([], session)

        assert exc_info.value.kind == ViolationKind.EMPTY_COMPOSITION

    def test_zero_quantity(self, session, hierarchy, pallets):
        with pytest.raises(ValidationViolation) as exc_info:
            calculate_composition(_boxes(hierarchy, 0), session)

        assert exc_info.value.kind == ViolationKind.INVALID_QUANTITY

    def test_unknown_product(self, session, pallets):
        with pytest.raises(NotFoundError):
            calculate_composition([{'product_id': 4242, 'quantity': 1}], session)

    def test_packaging_of_other_product(self, session, hierarchy, pallets, make_product, make_packaging):
        other = make_product(name='Otro')
        other_unit = make_packaging(other, 'Unidad', 1, 1, is_base_unit=True)

        with pytest.raises(NotFoundError):
            calculate_composition([{
                'product_id': hierarchy['product'].id,
                'packaging_type_id': other_unit.id,
                'quantity': 1,
            }], session)

    def test_no_pallet_supports_weight(self, session, hierarchy, pallets):
        """Test that 300 boxes (1800 kg) exceed every available pallet."""
        with pytest.raises(NoSuitablePalletError) as exc_info:
            calculate_composition(_boxes(hierarchy, 300), session)

        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.payload['code'] == 'NoSuitablePallet'

    def test_smallest_sufficient_pallet_chosen(self, session, hierarchy, pallets):
        result = calculate_composition(_boxes(hierarchy, 9), session)

        assert result['pallet']['id'] == pallets['small'].id

    def test_heavier_load_moves_to_larger_pallet(self, session, hierarchy, pallets):
        result = calculate_composition(_boxes(hierarchy, 100), session)

        assert result['pallet']['id'] == pallets['large'].id

    def test_unavailable_pallets_skipped(self, session, hierarchy, make_pallet):
        make_pallet(code='BROKEN', max_weight=100, status=PalletStatus.DEFECTIVE.value)
        ok = make_pallet(code='OK', max_weight=800)

        result = calculate_composition(_boxes(hierarchy, 9), session)

        assert result['pallet']['id'] == ok.id

    def test_explicit_pallet_not_found(self, session, hierarchy, pallets):
        with pytest.raises(NotFoundError):
            calculate_composition(_boxes(hierarchy, 1), session, pallet_id=999)

    def test_invalid_constraint(self, session, hierarchy, pallets):
        with pytest.raises(ValidationViolation) as exc_info:
            calculate_composition(_boxes(hierarchy, 1), session, constraints={'max_height': 0})

        assert exc_info.value.kind == ViolationKind.INVALID_CONSTRAINT


class TestCalculateMetrics:
    """Weight, volume, height and efficiency."""

    def test_aggregates(self, session, hierarchy, pallets):
        result = calculate_composition(_boxes(hierarchy, 9), session)

        assert result['weight']['total'] == Decimal('54')
        assert result['weight']['limit'] == Decimal('500')
        assert result['weight']['utilization'] == Decimal('0.108')
        assert result['volume']['total'] == Decimal('0.216')
        assert result['volume']['limit'] == Decimal('2.4')
        assert result['volume']['utilization'] == Decimal('0.09')
        assert result['height']['total'] == Decimal('20')
        assert result['height']['limit'] == Decimal('200')
        assert result['efficiency'] == Decimal('0.09')
        assert result['is_valid'] is True

    def test_weight_falls_back_to_product(self, session, make_product, make_packaging, pallets):
        """Test that a packaging without physical data uses the product's."""
        product = make_product(weight='2', dimensions={'length': 10, 'width': 10, 'height': 10})
        make_packaging(product, 'Unidad', 1, 1, is_base_unit=True)
        six_pack = make_packaging(product, 'Pack', 6, 2)

        result = calculate_composition(
            [{'product_id': product.id, 'packaging_type_id': six_pack.id, 'quantity': 2}], session
        )

        assert result['weight']['total'] == Decimal('24')
        assert result['products'][0]['base_units'] == Decimal('12')

    def test_base_unit_used_when_no_packaging_given(self, session, hierarchy, pallets):
        result = calculate_composition([{'product_id': hierarchy['product'].id, 'quantity': 4}], session)

        assert result['products'][0]['packaging_type_id'] == hierarchy['unit'].id
        assert result['weight']['total'] == Decimal('2')

    def test_constraint_overrides(self, session, hierarchy, pallets):
        result = calculate_composition(
            _boxes(hierarchy, 9), session,
            constraints={'max_weight': 100, 'max_volume': '1.2', 'max_height': 40}
        )

        assert result['weight']['utilization'] == Decimal('0.54')
        assert result['volume']['utilization'] == Decimal('0.18')
        assert result['height']['utilization'] == Decimal('0.5')

    def test_overweight_is_error_and_efficiency_capped(self, session, hierarchy, pallets):
        result = calculate_composition(
            _boxes(hierarchy, 9), session, pallet_id=pallets['small'].id,
            constraints={'max_weight': 10, 'max_volume': '0.1'}
        )

        assert result['is_valid'] is False
        assert {v['type'] for v in result['violations']} == {'weight', 'volume'}
        assert all(v['severity'] == 'error' for v in result['violations'])
        assert result['weight']['utilization'] > 1
        assert result['efficiency'] == Decimal('1')

    @pytest.mark.parametrize('quantity', [1, 9, 40, 80])
    def test_efficiency_bounds(self, session, hierarchy, pallets, quantity):
        result = calculate_composition(_boxes(hierarchy, quantity), session)

        assert Decimal('0') <= result['efficiency'] <= Decimal('1')


class TestLayout:
    """Shelf-packing layout."""

    def test_rows_and_layers(self, session, hierarchy, pallets):
        """Test 40x30 boxes on a 100x120 pallet: 2 per row, 4 rows, 8 per layer."""
        result = calculate_composition(_boxes(hierarchy, 9), session)
        layout = result['layout']

        assert layout['total_items'] == 9
        assert layout['layers'] == 2
        assert layout['items_per_layer'] == 8
        assert layout['stack_height'] == Decimal('40')

        positions = [item['position'] for item in layout['arrangement']]
        assert positions[0] == {'x': 0, 'y': 0, 'z': 0}
        assert positions[1] == {'x': 40, 'y': 0, 'z': 0}
        assert positions[2] == {'x': 0, 'y': 30, 'z': 0}
        assert positions[8] == {'x': 0, 'y': 0, 'z': 20}

    def test_layout_is_deterministic(self, session, hierarchy, pallets):
        first = calculate_composition(_boxes(hierarchy, 17), session)
        second = calculate_composition(_boxes(hierarchy, 17), session)

        assert first['layout'] == second['layout']

    def test_many_layers_warns(self, session, hierarchy, pallets):
        result = calculate_composition(_boxes(hierarchy, 40), session)

        assert result['layout']['layers'] == 5
        assert any('capas' in w for w in result['warnings'])

    def test_oversize_item_flagged(self, session, hierarchy, make_pallet):
        make_pallet(code='MINI', max_weight=500, width=30, length=30)

        result = calculate_composition(_boxes(hierarchy, 1), session)

        assert result['products'][0]['can_fit'] is False
        assert result['layout']['total_items'] == 1
        assert any('excede' in w for w in result['warnings'])

    def test_low_utilization_recommendations(self, session, hierarchy, pallets):
        result = calculate_composition(_boxes(hierarchy, 1), session)

        assert len(result['recommendations']) == 2


class TestValidateConstraints:
    """Tests for validate_constraints."""

    def test_metrics_and_low_efficiency_warning(self, session, hierarchy, pallets):
        validation = validate_constraints(_boxes(hierarchy, 9), session)

        assert validation['is_valid'] is True
        assert validation['violations'] == []
        assert validation['metrics']['total_weight'] == Decimal('54')
        assert validation['metrics']['efficiency'] == Decimal('0.09')
        assert len(validation['warnings']) == 1

    def test_violation_reported(self, session, hierarchy, pallets):
        validation = validate_constraints(_boxes(hierarchy, 9), session, constraints={'max_height': 10})

        assert validation['is_valid'] is False
        assert 'height' in {v['type'] for v in validation['violations']}


class TestHeightLimits:
    """Height advisories and violations."""

    def test_near_height_limit_warns(self, session, hierarchy, pallets):
        """Test that a 20 cm box under a 21 cm ceiling is valid but warned."""
        result = calculate_composition(_boxes(hierarchy, 1), session, constraints={'max_height': 21})

        assert result['is_valid'] is True
        assert result['height']['utilization'] == Decimal('0.9524')
        assert any('Altura' in w for w in result['warnings'])

    def test_height_only_violation(self, session, hierarchy, pallets):
        result = calculate_composition(_boxes(hierarchy, 1), session, constraints={'max_height': 19})

        assert result['is_valid'] is False
        assert [v['type'] for v in result['violations']] == ['height']
        assert result['violations'][0]['affected_products'] == [hierarchy['product'].id]

    def test_comfortable_height_has_no_warning(self, session, hierarchy, pallets):
        result = calculate_composition(_boxes(hierarchy, 1), session)

        assert not any('Altura' in w for w in result['warnings'])


class TestItemCeiling:
    """Requests larger than the configured item ceiling."""

    def test_too_many_items_rejected(self, session, hierarchy, pallets):
        with pytest.raises(ValidationViolation) as exc_info:
            calculate_composition(_boxes(hierarchy, 10001), session)

        assert exc_info.value.kind == ViolationKind.INVALID_QUANTITY
        assert exc_info.value.payload['max_items'] == 10000

    def test_ceiling_counts_every_line(self, session, hierarchy, pallets):
        products = _boxes(hierarchy, 6000) + _boxes(hierarchy, 6000)

        with pytest.raises(ValidationViolation):
            validate_constraints(products, session)
