import pytest

from shopledger.errors import ValidationError, NotFoundError, ConflictError
from shopledger.services import entity_service


def test_register_and_get(db_session):
    entity = entity_service.register_entity("stock_item", " ITEM-9 ", "Spirit level")
    assert entity.ref == "ITEM-9"
    assert entity.is_stock

    fetched = entity_service.get_entity("stock_item", "ITEM-9")
    assert fetched.id == entity.id
    assert fetched.to_dict()["name"] == "Spirit level"


def test_same_ref_allowed_across_types(db_session):
    entity_service.register_entity("customer", "ACME")
    entity_service.register_entity("supplier", "ACME")
    with pytest.raises(ConflictError):
        entity_service.register_entity("customer", "ACME")


def test_invalid_type_and_blank_ref(db_session):
    with pytest.raises(ValidationError):
        entity_service.register_entity("warehouse", "W1")
    with pytest.raises(ValidationError):
        entity_service.register_entity("customer", "   ")


def test_get_missing_entity(db_session):
    with pytest.raises(NotFoundError) as exc:
        entity_service.get_entity("supplier", "SUP-404")
    assert exc.value.details == {"entity_type": "supplier", "ref": "SUP-404"}


def test_deactivate_hides_from_default_listing(entities):
    entity_service.deactivate_entity("customer", "CUST-1")

    active = {e.ref for e in entity_service.list_entities("customer")}
    everything = {e.ref for e in entity_service.list_entities("customer", include_inactive=True)}
    assert active == set()
    assert everything == {"CUST-1"}

    with pytest.raises(ValidationError):
        entity_service.require_active_entity("customer", "CUST-1")
