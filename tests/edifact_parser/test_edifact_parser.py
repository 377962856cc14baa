# FILE: tests/edifact_parser/test_edifact_parser.py
import pytest
from cdm import ParsedEdiMessage
from edifact_parser import EdifactParser, identify_message_type, parse_edifact

pytestmark = pytest.mark.unit


def test_parse_minimal_message(minimal_orders_message: str):
    parsed = parse_edifact(minimal_orders_message)
    assert isinstance(parsed, ParsedEdiMessage)
    assert parsed.tags() == ["UNH", "UNT"]
    unh = parsed.segments[0]
    assert unh.elements == ("1", "ORDERS:D:96A:UN")
    assert unh.original == "UNH+1+ORDERS:D:96A:UN"
    assert unh.get_components(2) == ["ORDERS", "D", "96A", "UN"]

def test_positions_are_one_based_and_contiguous(utilmd_interchange: str):
    parsed = parse_edifact(utilmd_interchange)
    assert [s.position for s in parsed.segments] == list(range(1, len(parsed.segments) + 1))
    assert parsed.tags() == ["UNB", "UNH", "BGM", "DTM", "NAD", "NAD", "IDE", "LOC", "RFF", "UNT", "UNZ"]

def test_original_is_reproduced_from_tag_and_raw_elements(utilmd_interchange: str, mscons_message: str):
    for message in (utilmd_interchange, mscons_message):
        for segment in parse_edifact(message).segments:
            assert segment.elements, f"{segment.tag} has no elements"
            assert "+".join([segment.tag, *segment.elements]) == segment.original

def test_service_string_advice_is_kept_outside_segments(utilmd_interchange: str):
    parsed = parse_edifact(utilmd_interchange)
    assert parsed.service_string_advice == "UNA:+.? '"
    assert parsed.get_segment("UNA") is None
    assert parsed.delimiters.release == "?"

def test_release_characters_stay_raw_but_decode_in_sub_elements(utilmd_interchange: str):
    dtm = parse_edifact(utilmd_interchange).get_segment("DTM")
    assert dtm.elements == ("137:202401151200?+00:303",)
    assert dtm.get_component(1, 1) == "137"
    assert dtm.get_component(1, 2) == "202401151200+00"
    assert dtm.get_component(1, 3) == "303"

def test_escaped_separators_in_free_text():
    parsed = parse_edifact("UNH+1+ORDERS:D:96A:UN'NAD+BY+Smith ?+ Sons?: Co'UNT+3+1'")
    nad = parsed.get_segment("NAD")
    assert nad.elements == ("BY", "Smith ?+ Sons?: Co")
    assert nad.get_component(2, 1) == "Smith + Sons: Co"
    assert nad.get_component(2, 2) is None

def test_empty_components_are_skipped_but_keep_their_index(utilmd_interchange: str):
    nad = parse_edifact(utilmd_interchange).get_segment("NAD")
    assert nad.get_component(2, 1) == "9900123000002"
    assert nad.get_component(2, 2) is None
    assert nad.get_component(2, 3) == "293"
    assert [(s.element_index, s.component_index) for s in nad.sub_elements] == [(1, 1), (2, 1), (2, 3)]

def test_custom_delimiters_are_applied_to_components():
    parsed = parse_edifact("UNA|*,# ~UNH*1*MSCONS|D|04B|UN~QTY*220|12,5|KWH~UNT*3*1~")
    qty = parsed.get_segment("QTY")
    assert qty.get_components(1) == ["220", "12,5", "KWH"]
    assert parsed.delimiters.decimal == ","

def test_get_segments_returns_all_in_order(utilmd_interchange: str):
    nads = parse_edifact(utilmd_interchange).get_segments("NAD")
    assert [n.get_component(1, 1) for n in nads] == ["MS", "MR"]

def test_parser_exposes_delimiters_before_parsing(utilmd_interchange: str):
    parser = EdifactParser(utilmd_interchange)
    assert parser.service_string_advice == "UNA:+.? '"
    assert len(parser.raw_segments) == 11

def test_parsed_message_is_immutable(minimal_orders_message: str):
    parsed = parse_edifact(minimal_orders_message)
    with pytest.raises(Exception):
        parsed.segments[0].tag = "XXX"

# --- Message type identification ---

def test_identify_message_type_from_unh(utilmd_interchange: str, mscons_message: str, invoic_message: str):
    assert identify_message_type(parse_edifact(utilmd_interchange)) == "UTILMD"
    assert identify_message_type(parse_edifact(mscons_message)) == "MSCONS"
    assert identify_message_type(parse_edifact(invoic_message)) == "INVOIC"

def test_identify_message_type_uppercases_unh_value():
    assert identify_message_type(parse_edifact("UNH+1+orders:D:96A:UN'UNT+2+1'")) == "ORDERS"

@pytest.mark.parametrize("message, expected", [
    ("PRI+AAA:10'IMD+F++:::Widget'LIN+1'", "QUOTES"),
    ("LIN+1'QTY+220:5:KWH'", "MSCONS"),
    ("IDE+24+TX1'LOC+172+DE1'", "UTILMD"),
    ("BGM+380+INV1'MOA+77:10'", "INVOIC"),
    ("BGM+220+PO1'DTM+137:20240101:102'", None),
])
def test_identify_message_type_without_unh(message, expected):
    assert identify_message_type(parse_edifact(message)) == expected

def test_unh_without_type_falls_back_to_segments():
    parsed = parse_edifact("UNH+1'LIN+1'QTY+220:5:KWH'UNT+4+1'")
    assert identify_message_type(parsed) == "MSCONS"
