import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from analyzer_errors import ResolutionDegraded
from cdm import EdiSegment, ParsedEdiMessage, SubElement, code_key
from edifact_tokenizer import SEGMENT_TAG_PATTERN
from partner_lookup import PartnerLookup, PartnerRecord, is_partner_code
from reference_models import ElementDefinition, ReferenceDictionary, SegmentDefinition

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_LOOKUPS = 8


class CodeResolver:
    """
    Enriches decoded segments with names from the reference dictionary.

    Segment descriptions come from the segment definitions, sub-element
    descriptions from the element/component definitions and ``resolved_name``
    from the bound code list (message-type scoped lists win). Market partner
    codes are resolved through the optional partner lookup. Anything that
    cannot be resolved stays None.
    """

    def __init__(
        self,
        dictionary: ReferenceDictionary,
        partner_lookup: Optional[PartnerLookup] = None,
        max_concurrent_lookups: int = DEFAULT_MAX_CONCURRENT_LOOKUPS,
    ):
        self.dictionary = dictionary
        self.partner_lookup = partner_lookup
        self.max_concurrent_lookups = max(1, max_concurrent_lookups)

    def _code_list_for(
        self,
        segment: EdiSegment,
        element_def: Optional[ElementDefinition],
        element_index: int,
        component_index: int,
    ) -> Optional[str]:
        binding = self.dictionary.binding_for(
            segment.tag, segment.get_component(1, 1), element_index, component_index
        )
        if binding:
            return binding.code_list
        if not element_def:
            return None
        if element_def.components:
            component_def = element_def.component(component_index)
            return component_def.code_list if component_def else None
        return element_def.code_list if component_index == 1 else None

    @staticmethod
    def _sub_element_description(element_def: Optional[ElementDefinition], component_index: int) -> Optional[str]:
        if not element_def:
            return None
        component_def = element_def.component(component_index)
        if component_def:
            return component_def.name
        return element_def.name

    @staticmethod
    def _key_for(definition: Optional[SegmentDefinition], segment: EdiSegment, element_index: int, component_index: int) -> str:
        element_def = definition.element(element_index) if definition else None
        composite = (
            bool(element_def and element_def.components)
            or component_index > 1
            or len(segment.get_components(element_index)) > 1
        )
        return code_key(segment.tag, element_index, component_index if composite else None)

    def _resolve_segment(
        self,
        segment: EdiSegment,
        message_type: Optional[str],
        partners: Dict[str, PartnerRecord],
    ) -> EdiSegment:
        definition = self.dictionary.segment(segment.tag)
        keyable = bool(SEGMENT_TAG_PATTERN.match(segment.tag))
        resolved_codes: Dict[str, str] = {}
        sub_elements: List[SubElement] = []

        for sub in segment.sub_elements or ():
            element_def = definition.element(sub.element_index) if definition else None
            list_id = self._code_list_for(segment, element_def, sub.element_index, sub.component_index)
            resolved_name = self.dictionary.code_meaning(list_id, sub.value, message_type) if list_id else None
            if resolved_name is None and sub.value in partners:
                resolved_name = partners[sub.value].display_name()
            if resolved_name is not None and keyable:
                resolved_codes[self._key_for(definition, segment, sub.element_index, sub.component_index)] = resolved_name
            sub_elements.append(SubElement(
                value=sub.value,
                description=self._sub_element_description(element_def, sub.component_index),
                resolved_name=resolved_name,
                element_index=sub.element_index,
                component_index=sub.component_index,
            ))

        description = definition.name if definition else None
        if segment.tag == "NAD":
            description = self._describe_party(segment, description, partners)

        return EdiSegment(
            tag=segment.tag,
            elements=segment.elements,
            original=segment.original,
            description=description,
            sub_elements=tuple(sub_elements),
            resolved_codes=resolved_codes or None,
            position=segment.position,
        )

    @staticmethod
    def _describe_party(segment: EdiSegment, description: Optional[str], partners: Dict[str, PartnerRecord]) -> Optional[str]:
        code = segment.get_component(2, 1)
        record = partners.get(code) if code else None
        if not record:
            return description
        return f"{description or segment.tag} - {segment.get_component(1, 1)}: {record.display_name()} ({code})"

    async def _lookup_partners(self, message: ParsedEdiMessage) -> Tuple[Dict[str, PartnerRecord], List[str]]:
        if self.partner_lookup is None:
            return {}, []

        # Deduplicated per call; order kept for deterministic logging.
        codes: List[str] = []
        seen: Set[str] = set()
        for segment in message.segments:
            for sub in segment.sub_elements or ():
                if sub.value not in seen and is_partner_code(sub.value):
                    seen.add(sub.value)
                    codes.append(sub.value)
        if not codes:
            return {}, []

        semaphore = asyncio.Semaphore(self.max_concurrent_lookups)

        async def bounded_lookup(code: str) -> Optional[PartnerRecord]:
            async with semaphore:
                return await self.partner_lookup.lookup(code)

        logger.debug(f"Looking up {len(codes)} partner code(s) (max {self.max_concurrent_lookups} concurrent).")
        results = await asyncio.gather(*(bounded_lookup(code) for code in codes), return_exceptions=True)

        partners: Dict[str, PartnerRecord] = {}
        failures: List[str] = []
        for code, result in zip(codes, results):
            if isinstance(result, BaseException):
                failures.append(f"{code}: {result}")
            elif result is not None:
                partners[code] = result
        return partners, failures

    async def resolve(self, message: ParsedEdiMessage, message_type: Optional[str] = None) -> ParsedEdiMessage:
        """Returns a resolved copy of ``message``; the input is left untouched."""
        partners, failures = await self._lookup_partners(message)
        if failures:
            degraded = ResolutionDegraded(len(failures), failures)
            logger.warning(f"ResolutionDegraded: {degraded}")

        segments = tuple(self._resolve_segment(segment, message_type, partners) for segment in message.segments)
        resolved = sum(len(segment.resolved_codes or {}) for segment in segments)
        logger.info(f"Resolved {resolved} code(s) across {len(segments)} segments ({len(partners)} partner(s) named).")
        return ParsedEdiMessage(
            segments=segments,
            delimiters=message.delimiters,
            service_string_advice=message.service_string_advice,
        )
