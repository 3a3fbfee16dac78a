import logging

from gymapp.core.logging_config import TenantFilter, current_tenant, tenant_logging


def _record():
    return logging.LogRecord("gymapp", logging.INFO, __file__, 1, "mensaje", None, None)


def test_records_outside_a_tenant_use_placeholder():
    record = _record()
    assert TenantFilter().filter(record) is True
    assert record.tenant_id == "-"


def test_tenant_logging_tags_records_and_resets():
    with tenant_logging("gym-centro"):
        record = _record()
        TenantFilter().filter(record)
        assert record.tenant_id == "gym-centro"

    assert current_tenant.get() == "-"


def test_empty_client_id_uses_placeholder():
    with tenant_logging(""):
        assert current_tenant.get() == "-"
