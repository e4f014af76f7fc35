"""
Unit tests for the composition lifecycle.
"""

import pytest
from decimal import Decimal

from wms.exceptions import (
    BusinessRuleViolation, InsufficientStockError, NotFoundError, ValidationViolation, ViolationKind
)
from wms.models import Composition, CompositionItem, CompositionStatus, StockRecord
from wms.services import composition_service


@pytest.fixture
def draft(session, stocked_hierarchy, pallets):
    """Draft composition with 9 boxes (108 base units)."""
    return composition_service.save_composition({
        'name': 'Pedido 1001',
        'description': 'Cliente mayorista',
        'products': [{
            'product_id': stocked_hierarchy['product'].id,
            'packaging_type_id': stocked_hierarchy['box'].id,
            'quantity': 9,
        }],
    }, session, user_id=1)


@pytest.fixture
def approved(session, draft):
    composition_service.update_status(draft.id, 'validated', 2, session)
    return composition_service.update_status(draft.id, 'approved', 2, session)


@pytest.fixture
def executed(session, approved):
    return composition_service.assemble(approved.id, 'DOCK-1', 3, session)


class TestSaveComposition:
    """Tests for save_composition / get / list."""

    def test_saved_as_draft_with_snapshot(self, session, draft, pallets):
        assert draft.status == CompositionStatus.DRAFT
        assert draft.pallet_id == pallets['small'].id
        assert draft.created_by == 1
        assert draft.efficiency == Decimal('0.09')
        assert draft.result['weight']['total'] == '54'
        assert draft.result['is_valid'] is True

    def test_items_recorded(self, session, draft, stocked_hierarchy):
        items = draft.items

        assert len(items) == 1
        assert items[0].packaging_type_id == stocked_hierarchy['box'].id
        assert items[0].quantity == Decimal('9')
        assert items[0].sort_order == 0
        assert items[0].layer == 2

    def test_name_required(self, session, stocked_hierarchy, pallets):
        with pytest.raises(ValidationViolation) as exc_info:
            composition_service.save_composition({
                'name': ' ',
                'products': [{'product_id': stocked_hierarchy['product'].id, 'quantity': 1}],
            }, session, user_id=1)

        assert exc_info.value.kind == ViolationKind.MISSING_FIELD

    def test_snapshot_not_recomputed_on_read(self, session, draft, stocked_hierarchy):
        """Test that reads return the stored result even after the data changed."""
        box = stocked_hierarchy['box']
        box.dimensions = dict(box.dimensions, weight='60')
        session.commit()

        composition = composition_service.get_composition(draft.id, session)

        assert composition.result['weight']['total'] == '54'

    def test_get_unknown(self, session):
        with pytest.raises(NotFoundError):
            composition_service.get_composition(999, session)

    def test_list_filters_combine(self, session, draft, stocked_hierarchy):
        other = composition_service.save_composition({
            'name': 'Pedido 1002',
            'products': [{'product_id': stocked_hierarchy['product'].id, 'quantity': 12}],
        }, session, user_id=5)
        composition_service.update_status(other.id, 'validated', 5, session)

        assert composition_service.list_compositions(session)['total'] == 2
        assert composition_service.list_compositions(session, created_by=5)['total'] == 1
        assert composition_service.list_compositions(session, status='draft')['total'] == 1
        assert composition_service.list_compositions(session, status='draft', created_by=5)['total'] == 0

    def test_list_pagination(self, session, draft):
        listing = composition_service.list_compositions(session, page=2, per_page=1)

        assert listing['compositions'] == []
        assert listing['pages'] == 1


class TestUpdateStatus:
    """Tests for update_status."""

    def test_forward_steps(self, session, draft):
        composition = composition_service.update_status(draft.id, 'validated', 2, session)
        assert composition.status == CompositionStatus.VALIDATED
        assert composition.approved_by is None

        composition = composition_service.update_status(draft.id, 'approved', 2, session)
        assert composition.status == CompositionStatus.APPROVED
        assert composition.approved_by == 2
        assert composition.approved_at is not None

    def test_skipping_a_step_rejected(self, session, draft):
        with pytest.raises(BusinessRuleViolation) as exc_info:
            composition_service.update_status(draft.id, 'approved', 2, session)

        assert exc_info.value.code == 'InvalidStatusTransition'

    def test_executed_not_reachable(self, session, approved):
        with pytest.raises(BusinessRuleViolation):
            composition_service.update_status(approved.id, 'executed', 2, session)

    def test_unknown_status(self, session, draft):
        with pytest.raises(BusinessRuleViolation) as exc_info:
            composition_service.update_status(draft.id, 'shipped', 2, session)

        assert exc_info.value.code == 'InvalidStatus'


class TestAssemble:
    """Tests for assemble."""

    def test_requires_approved(self, session, draft):
        with pytest.raises(BusinessRuleViolation) as exc_info:
            composition_service.assemble(draft.id, 'DOCK-1', 3, session)

        assert exc_info.value.code == 'InvalidStatusTransition'

    def test_assemble(self, session, executed):
        assert executed.status == CompositionStatus.EXECUTED
        assert executed.assembled_location == 'DOCK-1'
        assert executed.executed_by == 3
        assert executed.executed_at is not None

    def test_insufficient_stock(self, session, approved, stocked_hierarchy):
        """Test that live stock is rechecked: 458 base units drop to 100."""
        session.query(StockRecord).filter(
            StockRecord.packaging_type_id != stocked_hierarchy['unit'].id
        ).update({StockRecord.is_active: False}, synchronize_session=False)
        session.query(StockRecord).filter(
            StockRecord.packaging_type_id == stocked_hierarchy['unit'].id
        ).update({StockRecord.quantity: Decimal('100')}, synchronize_session=False)
        session.commit()

        with pytest.raises(InsufficientStockError) as exc_info:
            composition_service.assemble(approved.id, 'DOCK-1', 3, session)

        error = exc_info.value
        assert error.required == Decimal('108')
        assert error.available == Decimal('100')
        assert error.deficit == Decimal('8')
        assert error.status_code == 409
        assert session.get(Composition, approved.id).status == CompositionStatus.APPROVED

    def test_location_required(self, session, approved):
        with pytest.raises(ValidationViolation):
            composition_service.assemble(approved.id, '', 3, session)


class TestDisassemble:
    """Tests for disassemble."""

    def test_requires_executed(self, session, approved, stocked_hierarchy):
        with pytest.raises(BusinessRuleViolation):
            composition_service.disassemble(
                approved.id, [{'product_id': stocked_hierarchy['product'].id, 'quantity': 1}], 3, session
            )

    def test_partial_disassembly(self, session, executed, stocked_hierarchy):
        composition = composition_service.disassemble(
            executed.id, [{'product_id': stocked_hierarchy['product'].id, 'quantity': 4}], 3, session
        )

        assert composition.status == CompositionStatus.APPROVED
        assert composition.assembled_location is None

    def test_targets_summed_per_product(self, session, executed, stocked_hierarchy):
        """Test that two lines of 5 exceed the 9 recorded boxes."""
        product_id = stocked_hierarchy['product'].id

        with pytest.raises(BusinessRuleViolation) as exc_info:
            composition_service.disassemble(
                executed.id,
                [{'product_id': product_id, 'quantity': 5}, {'product_id': product_id, 'quantity': 5}],
                3, session
            )

        assert exc_info.value.code == 'ExcessiveDisassemblyQuantity'
        assert session.get(Composition, executed.id).status == CompositionStatus.EXECUTED

    def test_product_not_in_composition(self, session, executed):
        with pytest.raises(BusinessRuleViolation) as exc_info:
            composition_service.disassemble(executed.id, [{'product_id': 777, 'quantity': 1}], 3, session)

        assert exc_info.value.code == 'ProductNotInComposition'

    def test_full_disassembly_without_targets(self, session, executed):
        composition = composition_service.disassemble(executed.id, [], 3, session)

        assert composition.status == CompositionStatus.APPROVED


class TestDeleteComposition:
    """Tests for delete_composition."""

    def test_soft_delete_with_items(self, session, draft):
        composition_service.delete_composition(draft.id, session)

        assert session.get(Composition, draft.id).is_active is False
        active_items = session.query(CompositionItem).filter(
            CompositionItem.composition_id == draft.id,
            CompositionItem.is_active.is_(True)
        ).count()
        assert active_items == 0
        with pytest.raises(NotFoundError):
            composition_service.get_composition(draft.id, session)

    def test_executed_cannot_be_deleted(self, session, executed):
        with pytest.raises(BusinessRuleViolation) as exc_info:
            composition_service.delete_composition(executed.id, session)

        assert exc_info.value.code == 'CompositionExecuted'
        assert session.get(Composition, executed.id).is_active is True
