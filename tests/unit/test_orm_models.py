"""Tests for ORM model definitions (no DB required)."""

import uuid

from sqlalchemy import BigInteger

from managed_files.storage.orm import Attachment, Base, Tenant, _uuid7
from managed_files.storage.repositories import to_tenant_record


class TestORMModels:
    """Verify ORM models are correctly defined."""

    def test_all_tables_registered(self) -> None:
        assert set(Base.metadata.tables.keys()) == {"tenants", "attachments"}

    def test_tenant_columns(self) -> None:
        columns = {c.name for c in Tenant.__table__.columns}
        assert {
            "id",
            "name",
            "api_key_hash",
            "key_prefix",
            "is_admin",
            "max_file_size_bytes",
            "max_storage_bytes",
            "created_at",
            "updated_at",
        } == columns

    def test_no_plaintext_key_column(self) -> None:
        """Only the hash and a display prefix of the key are stored."""
        columns = {c.name for c in Tenant.__table__.columns}
        assert "api_key" not in columns

    def test_limits_are_bigint(self) -> None:
        """Byte limits and sizes exceed 32-bit range for large tenants."""
        assert isinstance(Tenant.__table__.c.max_storage_bytes.type, BigInteger)
        assert isinstance(Tenant.__table__.c.max_file_size_bytes.type, BigInteger)
        assert isinstance(Attachment.__table__.c.size_bytes.type, BigInteger)

    def test_limits_nullable(self) -> None:
        assert Tenant.__table__.c.max_storage_bytes.nullable is True
        assert Tenant.__table__.c.max_file_size_bytes.nullable is True

    def test_tenant_name_unique(self) -> None:
        assert Tenant.__table__.c.name.unique is True

    def test_attachment_fk_cascade(self) -> None:
        (fk,) = Attachment.__table__.c.tenant_id.foreign_keys
        assert fk.target_fullname == "tenants.id"
        assert fk.ondelete == "CASCADE"

    def test_attachment_tenant_indexed(self) -> None:
        assert Attachment.__table__.c.tenant_id.index is True

    def test_uuid7_is_version_7(self) -> None:
        value = _uuid7()
        assert isinstance(value, uuid.UUID)
        assert value.version == 7

    def test_hash_not_in_repr(self) -> None:
        tenant = Tenant(name="alpha", api_key_hash="$2b$12$secret", key_prefix="mf")
        assert "secret" not in repr(tenant)


class TestTenantRecordMapping:
    def test_to_tenant_record(self) -> None:
        tenant = Tenant(
            id=uuid.uuid4(),
            name="alpha",
            api_key_hash="$2b$04$hash",
            key_prefix="mf_live_abcd",
            is_admin=True,
            max_file_size_bytes=10,
            max_storage_bytes=100,
        )

        record = to_tenant_record(tenant)

        assert record.tenant_id == tenant.id
        assert record.display_name == "alpha"
        assert record.secret_hash == "$2b$04$hash"
        assert record.is_admin is True
        assert record.max_object_size_bytes == 10
        assert record.max_aggregate_storage_bytes == 100
