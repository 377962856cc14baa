# FILE: tests/conftest.py

import pytest
import sys
import os
import logging

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from partner_lookup import InMemoryPartnerLookup, PartnerRecord
from reference_manager import ReferenceManager
from reference_models import ReferenceDictionary

# ==============================================================================
# PYTEST CONFIGURATION & HOOKS
# ==============================================================================

def pytest_configure(config):
    """Configure pytest settings and markers."""
    config.addinivalue_line("markers", "unit: Pure unit tests with no external dependencies.")
    config.addinivalue_line("markers", "integration: Tests exercising the full analysis pipeline.")

@pytest.fixture(scope="session", autouse=True)
def setup_test_environment(pytestconfig):
    """Set up test environment with logging configuration."""
    # Use pytest's log_cli_level if available, otherwise default to INFO
    log_level = pytestconfig.getoption("log_cli_level") or "INFO"
    logging.basicConfig(
        level=log_level.upper(),
        format="[%(asctime)s] [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s",
        stream=sys.stdout,
        force=True,
    )
    logging.info(f"Test logging configured with level: {log_level.upper()}")
    yield

# ==============================================================================
# REFERENCE DATA FIXTURES
# ==============================================================================

@pytest.fixture(scope="session")
def reference_manager() -> ReferenceManager:
    """Reference manager over the dictionaries shipped in src/schemas."""
    manager = ReferenceManager()
    if not manager.list_dictionaries():
        pytest.skip(f"Reference dictionaries not found at: {manager.reference_path}")
    return manager

@pytest.fixture(scope="session")
def reference_dictionary(reference_manager: ReferenceManager) -> ReferenceDictionary:
    return reference_manager.snapshot()

@pytest.fixture
def partner_lookup() -> InMemoryPartnerLookup:
    return InMemoryPartnerLookup([
        PartnerRecord(code="9900123000002", company_name="Stadtwerke Musterstadt", roles=("LF",)),
        PartnerRecord(code="9900456000004", company_name="Netzbetreiber Nord", roles=("NB",)),
    ])

# ==============================================================================
# MESSAGE FIXTURES
# ==============================================================================

@pytest.fixture(scope="session")
def minimal_orders_message() -> str:
    """Message header and trailer only: no interchange, no BGM, wrong UNT count."""
    return "UNH+1+ORDERS:D:96A:UN'UNT+1+1'"

@pytest.fixture(scope="session")
def utilmd_interchange() -> str:
    """
    A complete UTILMD interchange with UNA, UNB/UNZ and a supplier switch
    process reference. It passes every plausibility rule.
    """
    return """UNA:+.? '
UNB+UNOC:3+9900123000002:500+9900456000004:500+240115:1200+DAR000123'
UNH+1+UTILMD:D:11A:UN:S1.1'
BGM+E01+MSG00001+9'
DTM+137:202401151200?+00:303'
NAD+MS+9900123000002::293'
NAD+MR+9900456000004::293'
IDE+24+TX000001'
LOC+172+DE0001234567890123456789012345678'
RFF+Z13:55001'
UNT+9+1'
UNZ+1+DAR000123'"""

@pytest.fixture(scope="session")
def mscons_message() -> str:
    """MSCONS message without interchange envelope; two meter readings."""
    return """UNH+1+MSCONS:D:04B:UN:2.4c'
BGM+7+MSG0002+9'
DTM+137:20240115:102'
NAD+MS+9900123000002::293'
NAD+MR+9900456000004::293'
UNS+D'
LOC+172+DE0001234567890123456'
LIN+1'
QTY+220:1234.5:KWH'
DTM+163:202401010000?+00:303'
QTY+220:1300:KWH'
DTM+163:202401020000?+00:303'
UNT+13+1'"""

@pytest.fixture(scope="session")
def invoic_message() -> str:
    return """UNH+INV1+INVOIC:D:96A:UN'
BGM+380+INV-2024-001+9'
DTM+137:20240131:102'
NAD+BY+4012345000009::9'
NAD+SU+4098765000001::9'
MOA+77:1190.00:EUR'
MOA+124:190.00:EUR'
UNT+8+INV1'"""

@pytest.fixture(scope="session")
def xml_message() -> str:
    return """<?xml version="1.0" encoding="UTF-8"?>
<Invoice id="INV-1">
  <Sender>Stadtwerke Musterstadt</Sender>
  <Amount currency="EUR">1190.00</Amount>
</Invoice>"""

