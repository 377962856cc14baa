import pytest
from cdm import MessageFormat
from format_detector import classify

pytestmark = pytest.mark.unit


@pytest.mark.parametrize("message", [
    "UNA:+.? 'UNB+UNOC:3+1+2+240101:1200+1'",
    "UNB+UNOC:3+9900123000002:500+9900456000004:500+240115:1200+DAR1'",
    "UNH+1+ORDERS:D:96A:UN'UNT+2+1'",
    "unh+1+orders:d:96a:un'unt+2+1'",
    "BGM+220+PO1'DTM+137:20240101:102'NAD+BY+4012345000009::9'",
    "\ufeffUNH+1+ORDERS:D:96A:UN'",
])
def test_classify_edifact(message):
    assert classify(message).format == MessageFormat.EDIFACT

def test_classify_edifact_fixtures(utilmd_interchange: str, mscons_message: str, invoic_message: str):
    for message in (utilmd_interchange, mscons_message, invoic_message):
        assert classify(message).format == MessageFormat.EDIFACT

def test_classify_xml(xml_message: str):
    classification = classify(xml_message)
    assert classification.format == MessageFormat.XML
    assert classification.reason

@pytest.mark.parametrize("message", [
    "Hello, please find the delivery schedule attached.",
    "Meter reading\nsubmitted today",
])
def test_classify_text(message):
    assert classify(message).format == MessageFormat.TEXT

@pytest.mark.parametrize("message", ["hello", "", "   \n\t "])
def test_classify_unknown(message):
    classification = classify(message)
    assert classification.format == MessageFormat.UNKNOWN
    assert classification.reason

def test_min_text_words_threshold():
    assert classify("Hello world").format == MessageFormat.UNKNOWN
    assert classify("Hello world", min_text_words=2).format == MessageFormat.TEXT

def test_single_body_segment_is_not_edifact():
    assert classify("BGM+220+PO1").format == MessageFormat.UNKNOWN

def test_classification_is_deterministic(utilmd_interchange: str):
    assert classify(utilmd_interchange) == classify(utilmd_interchange)
    assert classify("just some words here") == classify("just some words here")
