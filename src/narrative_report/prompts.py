"""
Narrative Report Generator - Prompts

Deterministic prompt assembly. Every function here is pure: the same input
always yields the same string.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import Organization, ReportTemplate, StyleAnalysis, StyleProfile, Tonality


ORG_TYPE_DESCRIPTIONS = {
    "association": "Ideell förening",
    "foundation": "Stiftelse",
    "cooperative": "Kooperativ",
    "company": "Företag",
    "municipality": "Kommunalt bolag",
    "faith": "Trossamfund",
    "union": "Fackförbund/branschorganisation",
    "other": "Organisation",
}

TONALITY_INSTRUCTIONS = {
    Tonality.FORMAL.value: (
        "Använd ett formellt, sakligt språk. Skriv i tredje person "
        "(\"styrelsen\", \"organisationen\"). Undvik talspråk."
    ),
    Tonality.SEMI_FORMAL.value: (
        "Använd ett professionellt men tillgängligt språk. \"Vi\"-form är "
        "acceptabelt. Tydligt och konkret utan att vara stelt."
    ),
    Tonality.CONVERSATIONAL.value: (
        "Använd ett varmt, engagerande språk. Skriv i vi-form. Korta meningar. "
        "Tillåt entusiasm men behåll professionalism."
    ),
}

# Short descriptions used when a single section is regenerated
TONALITY_SHORT = {
    Tonality.FORMAL.value: "formellt, sakligt",
    Tonality.SEMI_FORMAL.value: "professionellt men tillgängligt",
    Tonality.CONVERSATIONAL.value: "varmt, engagerande",
}

DEFAULT_TONALITY = Tonality.SEMI_FORMAL.value
MAX_REUSED_PHRASES = 10

ROLE_FRAMING = """Du är expert på att skriva professionella verksamhetsrapporter på svenska.

Din uppgift är att omformulera och förbättra språket i underlaget så att det blir enhetligt och professionellt. Du ska ALDRIG korta ner eller sammanfatta innehållet.
"""

CRITICAL_RULES = """
KRITISKA REGLER:
- BEHÅLL HELA TEXTLÄNGDEN – varje avsnitt ska bli lika långt eller längre
- BEVARA ALLA DETALJER, namn, datum, belopp, procentsatser och specifika händelser
- INGA PÅHITT – lägg aldrig till information som inte finns i underlaget
- KONSISTENS – enhetlig ton och stil genom hela rapporten
- Skriv i aktiv form med korta, klara meningar
- Variera meningslängden men håll de flesta meningar under 25 ord
- Använd punkt och kommatecken; undvik semikolon, utropstecken och långa tankstreck
- Undvik klichéer som "i en alltmer föränderlig värld", "det är viktigt att notera" och "sammanfattningsvis kan sägas"

OUTPUT-KRAV:
- Komplett rapport i textformat med FULL detaljnivå
- Alla rubriker och underrubriker ska finnas med
- Ren text eller enkel markdown (rubriker, listor), inga kodblock eller kommentarer om uppgiften
- Färdig för direkt kopiering till dokumentmall"""

USER_PROMPT_INTRO = "Förbättra språket i följande underlag till en komplett verksamhetsrapport:"

USER_PROMPT_OUTRO = (
    "VIKTIGT: Omformulera texten ovan med enhetligt, professionellt och samtalsnära språk. "
    "Behåll ALLA detaljer, exempel, namn, datum och specifik information. "
    "Din output ska vara lika lång eller längre än input. "
    "Sammanfatta INTE – förbättra endast språket och strukturen."
)

COHERENCE_PROMPT = """Du har fått en rapport som genererats i flera delar. Säkerställ att rapporten är sammanhängande och professionell.

VIKTIGT:
- Behåll ALLT innehåll
- Ta bort eventuella dupliceringar mellan delarna
- Säkerställ smidiga övergångar
- Kontrollera konsekvent numrering

Rapport:

{content}"""

STYLE_ANALYSIS_PROMPT = """Du är expert på att analysera skrivstil i svenska texter. Analysera följande text och extrahera detaljerade stilmönster. Texten är en verksamhetsberättelse/rapport från en organisation.

ANALYSERA OCH RETURNERA ENBART JSON (ingen annan text):

{
  "tonality": "formal" | "semi-formal" | "conversational",
  "formality_score": 0.0-1.0,
  "avg_sentence_length": <antal ord per mening>,
  "vocabulary_level": "simple" | "professional" | "academic",
  "active_voice_ratio": 0.0-1.0,
  "common_phrases": ["fras1", "fras2", ...],
  "section_transition_style": "beskrivning",
  "number_presentation": "beskrivning",
  "person_reference": "vi" | "organisationen" | "styrelsen" | "blandat",
  "tense_preference": "preteritum" | "presens" | "blandat",
  "paragraph_style": "korta stycken" | "långa stycken" | "blandade",
  "use_of_subheadings": true | false,
  "analysis_summary": "3-5 meningar som sammanfattar stilen"
}"""


@dataclass(frozen=True)
class ChunkInfo:
    """Position of a chunk within a multi-part generation."""
    current: int
    total: int

    def __post_init__(self):
        if self.total < 1 or not 1 <= self.current <= self.total:
            raise ValueError(f"Invalid chunk position {self.current}/{self.total}")

    @property
    def is_first(self) -> bool:
        return self.current == 1

    @property
    def is_last(self) -> bool:
        return self.current == self.total


def org_type_description(org_type: Optional[str]) -> str:
    return ORG_TYPE_DESCRIPTIONS.get(org_type or "", ORG_TYPE_DESCRIPTIONS["other"])


def tonality_instruction(style_profile: Optional[StyleProfile]) -> str:
    tonality = (style_profile.tonality if style_profile else None) or DEFAULT_TONALITY
    return TONALITY_INSTRUCTIONS.get(tonality, TONALITY_INSTRUCTIONS[DEFAULT_TONALITY])


def build_style_instructions(analysis: StyleAnalysis) -> str:
    """Style-imitation block derived from a reference document."""
    instructions = "\nSTILANPASSNING BASERAT PÅ REFERENSDOKUMENT:\n"

    if analysis.common_phrases:
        phrases = ", ".join(analysis.common_phrases[:MAX_REUSED_PHRASES])
        instructions += f"- Återanvänd gärna dessa typiska uttryck: {phrases}\n"

    if analysis.person_reference:
        instructions += f"- Referera till organisationen som: \"{analysis.person_reference}\"\n"

    if analysis.analysis_summary:
        instructions += f"- Övergripande stilbeskrivning: {analysis.analysis_summary}\n"

    return instructions


def build_structure_instructions(template: ReportTemplate) -> str:
    """Template outline: numbered top-level headings, indented sub-headings."""
    instructions = "\nRAPPORTSTRUKTUR:\n"
    number = 0

    for section in template.ordered_sections:
        indent = "  " * (section.level - 1)
        if section.level == 1:
            number += 1
            instructions += f"{number}. {section.title}\n"
        else:
            instructions += f"{indent}- {section.title}\n"
        if section.ai_instructions:
            instructions += f"{indent}    [{section.ai_instructions}]\n"

    return instructions


def build_system_prompt(
    organization: Organization,
    template: ReportTemplate,
    style_profile: Optional[StyleProfile] = None,
    reference_analysis: Optional[StyleAnalysis] = None,
) -> str:
    """
    Assemble the system prompt for report generation.

    Args:
        organization: Organization the report is written for
        template: Report template defining the outline
        style_profile: Writing preferences (organization profile if omitted)
        reference_analysis: Optional analysis of a reference document

    Returns:
        System prompt text
    """
    style_profile = style_profile or organization.style_profile

    prompt = ROLE_FRAMING
    prompt += f"""
ORGANISATION: {organization.name}
TYP: {org_type_description(organization.org_type)}
SEKTOR: {organization.sector or 'Ej specificerad'}
"""
    prompt += f"\nTONALITET: {tonality_instruction(style_profile)}\n"

    if reference_analysis is not None:
        prompt += build_style_instructions(reference_analysis)

    prompt += build_structure_instructions(template)

    if style_profile.custom_instructions:
        prompt += f"\nANVÄNDARENS EGNA INSTRUKTIONER:\n{style_profile.custom_instructions}\n"

    prompt += "\n" + CRITICAL_RULES
    return prompt


def build_chunk_context(chunk_info: ChunkInfo) -> str:
    context = (
        f"OBSERVERA: Detta är del {chunk_info.current} av {chunk_info.total} "
        "i ett större dokument."
    )
    if chunk_info.is_first:
        context += " Detta är första delen – etablera struktur och ton."
    elif chunk_info.is_last:
        context += " Detta är sista delen – avsluta rapporten professionellt."
    else:
        context += " Detta är en mellandel – fortsätt med samma stil och struktur."
    return context


def build_user_prompt(content_text: str, chunk_info: Optional[ChunkInfo] = None) -> str:
    """
    Wrap section notes in the rewrite instruction.

    Args:
        content_text: Flattened section notes, included verbatim
        chunk_info: Position of this chunk when generating in parts

    Returns:
        User prompt text
    """
    prompt = ""
    if chunk_info is not None:
        prompt += build_chunk_context(chunk_info) + "\n\n"

    prompt += f"""{USER_PROMPT_INTRO}

{content_text}

{USER_PROMPT_OUTRO}"""
    return prompt


def build_coherence_prompt(content: str) -> str:
    """Instruction for the final merge pass over a multi-part report."""
    return COHERENCE_PROMPT.format(content=content)


def build_section_prompts(
    organization: Organization,
    section_title: str,
    section_input: Optional[str] = None,
    current_text: Optional[str] = None,
    feedback: Optional[str] = None,
    style_profile: Optional[StyleProfile] = None,
) -> tuple[str, str]:
    """
    Build ``(system, user)`` prompts for regenerating one section.
    """
    style_profile = style_profile or organization.style_profile
    tonality = style_profile.tonality or DEFAULT_TONALITY
    tonality_desc = TONALITY_SHORT.get(tonality, "professionellt")

    system = f"""Du är expert på att skriva professionella verksamhetsrapporter på svenska.
Du ska regenerera ETT avsnitt i en rapport för {organization.name}.
Använd {tonality_desc} språk.
Behåll ALLA detaljer från originaltexten. Förkorta INTE."""

    if feedback:
        system += f"\n\nAnvändarens feedback: \"{feedback}\"\nAnpassa texten baserat på denna feedback."

    user = f"Avsnitt: {section_title}\n\n"
    if section_input:
        user += f"ORIGINALTEXT (input):\n{section_input}\n\n"
    if current_text:
        user += f"NUVARANDE GENERERAD TEXT (förbättra denna):\n{current_text}\n\n"
    user += f"Skriv en förbättrad version av avsnittet \"{section_title}\"."

    return system, user
