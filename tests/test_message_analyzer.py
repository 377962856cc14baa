import pytest
import asyncio
import json
import logging
import shutil
from pathlib import Path
from unittest.mock import AsyncMock
from analyzer_config import AnalyzerSettings
from analyzer_errors import EmptyMessageError, ParseError
from cdm import AnalysisResult, MessageFormat
from message_analyzer import MessageAnalyzer, require_message
from partner_lookup import PartnerRecord
from reference_manager import ReferenceManager

pytestmark = pytest.mark.integration


@pytest.fixture
def analyzer(reference_manager: ReferenceManager, partner_lookup) -> MessageAnalyzer:
    return MessageAnalyzer(reference_manager, partner_lookup)


@pytest.mark.asyncio
async def test_minimal_orders_message(analyzer: MessageAnalyzer, minimal_orders_message: str):
    result = await analyzer.analyze(minimal_orders_message)
    assert isinstance(result, AnalysisResult)
    assert result.format == MessageFormat.EDIFACT
    assert result.message_type == "ORDERS"
    assert result.structured_data.tags() == ["UNH", "UNT"]
    assert result.plausibility_checks
    assert any("UNB" in check for check in result.plausibility_checks)
    assert any(check.startswith("MESSAGE-CONTROL:") for check in result.plausibility_checks)
    assert result.summary.startswith("ORDERS EDIFACT message with 2 segment(s) (UNH, UNT).")
    assert "Plausibility checks raised 2 error(s) and 3 warning(s)." in result.summary

@pytest.mark.asyncio
async def test_complete_utilmd_interchange(analyzer: MessageAnalyzer, utilmd_interchange: str):
    result = await analyzer.analyze(utilmd_interchange)
    assert result.message_type == "UTILMD"
    assert result.plausibility_checks == ()
    assert result.insights.sender == "Stadtwerke Musterstadt [LF]"
    assert result.insights.business_process == "Supply start DSO to new supplier (WiM) (PID 55001)"
    assert "Sent by Stadtwerke Musterstadt [LF] to Netzbetreiber Nord [NB]." in result.summary
    assert result.summary.endswith("All plausibility checks passed.")
    assert result.structured_data.service_string_advice == "UNA:+.? '"

@pytest.mark.asyncio
async def test_positions_and_round_trip(analyzer: MessageAnalyzer, mscons_message: str):
    result = await analyzer.analyze(mscons_message)
    segments = result.structured_data.segments
    assert [s.position for s in segments] == list(range(1, len(segments) + 1))
    for segment in segments:
        assert "+".join([segment.tag, *segment.elements]) == segment.original
    assert len(result.insights.measurements) == 2
    assert "2 measurement(s) reported." in result.summary

@pytest.mark.asyncio
async def test_analysis_is_idempotent(analyzer: MessageAnalyzer, utilmd_interchange: str):
    first = await analyzer.analyze(utilmd_interchange)
    second = await analyzer.analyze(utilmd_interchange)
    assert first == second
    assert first is not second
    assert first.to_json() == second.to_json()

@pytest.mark.asyncio
async def test_escaped_separator_in_free_text(analyzer: MessageAnalyzer):
    result = await analyzer.analyze("UNH+1+ORDERS:D:96A:UN'NAD+BY+Smith ?+ Sons'UNT+3+1'")
    nad = result.structured_data.get_segment("NAD")
    assert nad.elements == ("BY", "Smith ?+ Sons")
    assert nad.get_component(2, 1) == "Smith + Sons"
    assert result.structured_data.tags() == ["UNH", "NAD", "UNT"]

@pytest.mark.asyncio
async def test_to_json_uses_camel_case(analyzer: MessageAnalyzer, utilmd_interchange: str):
    data = json.loads((await analyzer.analyze(utilmd_interchange)).to_json())
    assert data["format"] == "EDIFACT"
    assert data["messageType"] == "UTILMD"
    assert data["plausibilityChecks"] == []
    bgm = data["structuredData"]["segments"][2]
    assert bgm["tag"] == "BGM"
    assert bgm["resolvedCodes"]["BGM01.1"] == "Request message"
    assert bgm["subElements"][0]["elementIndex"] == 1

@pytest.mark.asyncio
async def test_single_word_is_unknown(analyzer: MessageAnalyzer):
    result = await analyzer.analyze("hello")
    assert result.format == MessageFormat.UNKNOWN
    assert result.structured_data.segments == ()
    assert result.plausibility_checks == ()
    assert result.summary

@pytest.mark.asyncio
async def test_empty_input(analyzer: MessageAnalyzer):
    with pytest.raises(EmptyMessageError):
        require_message("   ")
    result = await analyzer.analyze("")
    assert result.format == MessageFormat.UNKNOWN
    assert "empty" in result.summary

def test_require_message_passes_content_through():
    assert require_message("UNH+1'") == "UNH+1'"

@pytest.mark.asyncio
async def test_plain_text_message(analyzer: MessageAnalyzer):
    result = await analyzer.analyze("Please confirm the switch date for the metering point.")
    assert result.format == MessageFormat.TEXT
    assert result.structured_data.segments == ()
    assert result.message_type is None

@pytest.mark.asyncio
async def test_xml_message(analyzer: MessageAnalyzer, xml_message: str):
    result = await analyzer.analyze(xml_message)
    assert result.format == MessageFormat.XML
    assert result.structured_data.tags() == ["Invoice", "Sender", "Amount"]
    assert result.summary == "XML message with root element <Invoice> and 3 element(s)."
    assert result.plausibility_checks == ()

@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["UNH+1+ORDERS?", "<a><b></a>"])
async def test_untokenizable_input_raises_parse_error(analyzer: MessageAnalyzer, message: str):
    with pytest.raises(ParseError):
        await analyzer.analyze(message)

@pytest.mark.asyncio
async def test_missing_reference_data_degrades(tmp_path: Path, utilmd_interchange: str, caplog):
    analyzer = MessageAnalyzer(ReferenceManager(tmp_path / "missing"))
    with caplog.at_level(logging.WARNING):
        result = await analyzer.analyze(utilmd_interchange)
    assert result.format == MessageFormat.EDIFACT
    assert result.message_type == "UTILMD"
    assert len(result.structured_data.segments) == 11
    assert all(s.description is None and s.resolved_codes is None for s in result.structured_data.segments)
    assert result.insights.purpose == "Document code E01"
    assert "ResolutionDegraded" in caplog.text

@pytest.mark.asyncio
async def test_failing_partner_lookup_keeps_result_shape(reference_manager: ReferenceManager, utilmd_interchange: str, caplog):
    failing_lookup = AsyncMock()
    failing_lookup.lookup = AsyncMock(side_effect=TimeoutError("partner directory timed out"))
    analyzer = MessageAnalyzer(reference_manager, failing_lookup)
    with caplog.at_level(logging.WARNING):
        result = await analyzer.analyze(utilmd_interchange)
    assert result.insights.sender == "9900123000002"
    assert result.plausibility_checks == ()
    assert "ResolutionDegraded" in caplog.text

@pytest.mark.asyncio
async def test_min_text_words_setting(reference_manager: ReferenceManager):
    analyzer = MessageAnalyzer(reference_manager, settings=AnalyzerSettings(min_text_words=2))
    assert (await analyzer.analyze("Hello world")).format == MessageFormat.TEXT

class UnreachableReference:
    """Reference source whose backing service cannot be reached."""
    def snapshot(self):
        raise ConnectionError("reference service unreachable")


@pytest.mark.asyncio
async def test_unreachable_reference_source_degrades(minimal_orders_message: str, caplog):
    analyzer = MessageAnalyzer(UnreachableReference())
    with caplog.at_level(logging.WARNING):
        result = await analyzer.analyze(minimal_orders_message)
    assert result.format == MessageFormat.EDIFACT
    assert result.message_type == "ORDERS"
    assert all(s.description is None for s in result.structured_data.segments)
    assert "ResolutionDegraded" in caplog.text
    assert "reference service unreachable" in caplog.text

@pytest.mark.asyncio
async def test_lowercase_tags_are_reported_not_rejected(analyzer: MessageAnalyzer):
    result = await analyzer.analyze("unh+1+orders:d:96a:un'unt+2+1'")
    assert result.format == MessageFormat.EDIFACT
    assert result.structured_data.tags() == ["unh", "unt"]
    tag_checks = [check for check in result.plausibility_checks if check.startswith("SEGMENT-TAG:")]
    assert len(tag_checks) == 2
    assert "malformed tag 'unh'" in tag_checks[0]

@pytest.mark.asyncio
async def test_interchange_reference_in_insights(analyzer: MessageAnalyzer, utilmd_interchange: str, mscons_message: str):
    assert (await analyzer.analyze(utilmd_interchange)).insights.interchange_reference == "DAR000123"
    assert (await analyzer.analyze(mscons_message)).insights.interchange_reference is None

@pytest.mark.asyncio
async def test_concurrent_analyses_match_sequential_results(
    analyzer: MessageAnalyzer, utilmd_interchange: str, mscons_message: str, invoic_message: str, minimal_orders_message: str,
):
    messages = [utilmd_interchange, mscons_message, invoic_message, minimal_orders_message, utilmd_interchange]
    sequential = [await analyzer.analyze(message) for message in messages]

    concurrent = await asyncio.gather(*(analyzer.analyze(message) for message in messages))

    assert list(concurrent) == sequential
    assert [r.message_type for r in concurrent] == ["UTILMD", "MSCONS", "INVOIC", "ORDERS", "UTILMD"]


OVERRIDE = {
    "name": "override",
    "version": "2",
    "scoped_code_lists": {"UTILMD": {"1001": {"id": "1001", "name": "Document name code", "codes": {"E01": "Changed request"}}}},
    "message_types": {"UTILMD": {"name": "UTILMD", "required_segments": ["BGM", "DTM", "NAD", "FTX"]}},
}


class ReloadingLookup:
    """Partner lookup that rewrites and reloads the reference data on its first call."""
    def __init__(self, manager: ReferenceManager, override_file: Path):
        self.manager = manager
        self.override_file = override_file
        self.reloaded = False

    async def lookup(self, code: str):
        if not self.reloaded:
            self.reloaded = True
            self.override_file.write_text(json.dumps(OVERRIDE))
            self.manager.reload_dictionaries()
        await asyncio.sleep(0.01)
        return PartnerRecord(code=code, company_name=f"Partner {code[-4:]}")


@pytest.mark.asyncio
async def test_reload_during_analysis_uses_one_snapshot(reference_manager: ReferenceManager, tmp_path: Path, utilmd_interchange: str):
    for reference_file in reference_manager.reference_path.glob("*.json"):
        shutil.copy(reference_file, tmp_path / reference_file.name)
    manager = ReferenceManager(tmp_path)
    lookup = ReloadingLookup(manager, tmp_path / "z_override.json")
    analyzer = MessageAnalyzer(manager, lookup)

    during = await analyzer.analyze(utilmd_interchange)
    after = await analyzer.analyze(utilmd_interchange)

    assert lookup.reloaded
    assert during.structured_data.get_segment("BGM").resolved_codes["BGM01.1"] == "Request message"
    assert during.plausibility_checks == ()
    assert after.structured_data.get_segment("BGM").resolved_codes["BGM01.1"] == "Changed request"
    assert after.plausibility_checks == ("MESSAGE-PROFILE: UTILMD message should contain a FTX segment.",)
