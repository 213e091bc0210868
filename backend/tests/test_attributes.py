import pytest

from mercantile.extensions import db
from mercantile.models import AttributeValue
from mercantile.services import attribute_service
from mercantile.validation import ConflictError, ReferentialIntegrityError, ValidationError


class TestAttributeRegistry:
    def test_values_trimmed_and_deduplicated(self, db_session):
        attribute = attribute_service.create_attribute(" Material ", ["Cotton", " Wool", "Cotton"])
        assert attribute.name == "Material"
        assert sorted(v.value for v in attribute.values) == ["Cotton", "Wool"]

    def test_duplicate_name_rejected(self, db_session, color):
        with pytest.raises(ConflictError):
            attribute_service.create_attribute("color", ["Green"])

    def test_values_must_be_strings(self, db_session):
        with pytest.raises(ValidationError):
            attribute_service.create_attribute("Material", ["Cotton", 3])

    def test_update_diffs_value_set(self, db_session, color):
        updated = attribute_service.update_attribute(color.id, "Colour", ["Red", "Green"])
        assert updated.name == "Colour"
        assert sorted(v.value for v in updated.values) == ["Green", "Red"]

    def test_resolve_unknown_value(self, db_session, color):
        with pytest.raises(ValidationError):
            attribute_service.resolve_attribute_values([(color.id, "Purple")])


class TestAttributeInUse:
    def test_used_value_cannot_be_removed(self, db_session, variable_product, color):
        with pytest.raises(ReferentialIntegrityError) as exc:
            attribute_service.update_attribute(color.id, "Color", ["Red"])
        assert "Blue" in str(exc.value)
        values = db.session.query(AttributeValue).filter_by(attribute_id=color.id).count()
        assert values == 2

    def test_unused_value_can_be_removed(self, db_session, variable_product, size):
        updated = attribute_service.update_attribute(size.id, "Size", ["S", "M"])
        assert sorted(v.value for v in updated.values) == ["M", "S"]

    def test_used_attribute_cannot_be_deleted(self, db_session, variable_product, size):
        with pytest.raises(ReferentialIntegrityError):
            attribute_service.delete_attribute(size.id)
        assert attribute_service.get_attribute(size.id) is not None

    def test_unused_attribute_deleted_with_values(self, db_session, color):
        attribute_service.delete_attribute(color.id)
        assert attribute_service.get_attribute(color.id) is None
        assert db.session.query(AttributeValue).count() == 0
