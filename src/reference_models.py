# Reference dictionary models: segment/element definitions, code lists and
# message type profiles used to resolve and check EDIFACT messages.
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ReferenceModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class CodeList(_ReferenceModel):
    id: str
    name: str
    codes: Dict[str, str] = Field(default_factory=dict)

    def merged_with(self, other: "CodeList") -> "CodeList":
        return CodeList(id=self.id, name=other.name or self.name, codes={**self.codes, **other.codes})


class ComponentDefinition(_ReferenceModel):
    position: int
    data_element: Optional[str] = None
    name: str
    code_list: Optional[str] = None


class ElementDefinition(_ReferenceModel):
    position: int
    data_element: Optional[str] = None
    name: str
    usage: str = Field("C", pattern="^[MC]$")
    code_list: Optional[str] = None
    components: List[ComponentDefinition] = Field(default_factory=list)

    def component(self, position: int) -> Optional[ComponentDefinition]:
        return next((c for c in self.components if c.position == position), None)


class SegmentDefinition(_ReferenceModel):
    tag: str
    name: str
    description: Optional[str] = None
    min_elements: int = 0
    max_elements: Optional[int] = None
    elements: List[ElementDefinition] = Field(default_factory=list)

    def element(self, position: int) -> Optional[ElementDefinition]:
        return next((e for e in self.elements if e.position == position), None)


class QualifiedCodeBinding(_ReferenceModel):
    """Binds a code list to a component when the segment carries a qualifier.

    The qualifier is read from element 1, component 1 of the segment.
    """
    segment: str
    qualifier: str
    element: int
    component: int = 1
    code_list: str


class MessageTypeProfile(_ReferenceModel):
    name: str
    description: Optional[str] = None
    bgm_required: bool = True
    required_segments: List[str] = Field(default_factory=list)


class ReferenceDictionary(_ReferenceModel):
    name: str = "empty"
    version: str = "0"
    description: Optional[str] = None
    segments: Dict[str, SegmentDefinition] = Field(default_factory=dict)
    code_lists: Dict[str, CodeList] = Field(default_factory=dict)
    # message type -> code list id -> overriding code list
    scoped_code_lists: Dict[str, Dict[str, CodeList]] = Field(default_factory=dict)
    qualified_bindings: List[QualifiedCodeBinding] = Field(default_factory=list)
    message_types: Dict[str, MessageTypeProfile] = Field(default_factory=dict)

    def segment(self, tag: str) -> Optional[SegmentDefinition]:
        return self.segments.get(tag)

    def code_meaning(self, code_list_id: str, code: str, message_type: Optional[str] = None) -> Optional[str]:
        """Looks a code up, preferring the message-type scoped list when present."""
        if message_type:
            scoped = self.scoped_code_lists.get(message_type, {}).get(code_list_id)
            if scoped and code in scoped.codes:
                return scoped.codes[code]
        code_list = self.code_lists.get(code_list_id)
        if code_list:
            return code_list.codes.get(code)
        return None

    def binding_for(self, tag: str, qualifier: Optional[str], element: int, component: int) -> Optional[QualifiedCodeBinding]:
        if not qualifier:
            return None
        return next(
            (
                b for b in self.qualified_bindings
                if b.segment == tag and b.qualifier == qualifier and b.element == element and b.component == component
            ),
            None,
        )

    def merged_with(self, other: "ReferenceDictionary") -> "ReferenceDictionary":
        """Returns a new dictionary where ``other`` overrides this one."""
        code_lists = dict(self.code_lists)
        for list_id, code_list in other.code_lists.items():
            code_lists[list_id] = code_lists[list_id].merged_with(code_list) if list_id in code_lists else code_list

        scoped: Dict[str, Dict[str, CodeList]] = {k: dict(v) for k, v in self.scoped_code_lists.items()}
        for message_type, lists in other.scoped_code_lists.items():
            target = scoped.setdefault(message_type, {})
            for list_id, code_list in lists.items():
                target[list_id] = target[list_id].merged_with(code_list) if list_id in target else code_list

        bindings = list(self.qualified_bindings)
        bindings.extend(b for b in other.qualified_bindings if b not in bindings)

        return ReferenceDictionary(
            name=other.name,
            version=other.version,
            description=other.description or self.description,
            segments={**self.segments, **other.segments},
            code_lists=code_lists,
            scoped_code_lists=scoped,
            qualified_bindings=bindings,
            message_types={**self.message_types, **other.message_types},
        )
