"""Language names, per-language subtitle rules and the translation prompt."""

from typing import Dict, List

LANGUAGE_NAMES: Dict[str, str] = {
    'ar': 'Arabic',
    'de': 'German',
    'en': 'English',
    'es': 'Spanish',
    'fr': 'French',
    'hi': 'Hindi',
    'it': 'Italian',
    'ja': 'Japanese',
    'ko': 'Korean',
    'ml': 'Malayalam',
    'nl': 'Dutch',
    'pt': 'Portuguese',
    'ru': 'Russian',
    'zh': 'Chinese',
}

_CODES_BY_NAME = {name.lower(): code for code, name in LANGUAGE_NAMES.items()}

TRANSLATION_RULES: Dict[str, str] = {
    'en': """English subtitle rules:
1. Convey the meaning of each line; prefer natural phrasing over word-for-word translation.
2. Keep lines to roughly 42 characters and never more than two lines per cue.
3. Break lines at natural pauses, keeping subject and verb together.
4. Use standard punctuation; use an ellipsis for trailing speech.
5. Drop filler words such as "um" and "uh" unless they matter to the scene.
6. Mark a change of speaker inside one cue with a leading hyphen; never write speaker names.
7. Keep names and technical terms consistent across the whole file.""",
    'ja': """日本語字幕のルール:
1. 直訳ではなく、話者の意図が伝わる自然で簡潔な日本語にする。
2. 1行は13〜15文字程度、1つの字幕は最大2行までにする。
3. 改行は意味の切れ目で行い、主語と述語を分断しない。
4. 話者の口調に合わせて敬語・口語を使い分ける。
5. 固有名詞や専門用語は原則として原文の表記を保つ。
6. 同じ字幕内で話者が替わる場合は行頭にハイフンを付け、話者名は書かない。
7. 全体を通して表記と訳語を統一する。""",
}

INTERCHANGE_TIMING = "1\n00:00:01,000 --> 00:00:04,000"

INTERCHANGE_EXAMPLE = f"{INTERCHANGE_TIMING}\nHello, world!"

# "Hello, world!" in each target language, shown as the expected reply shape.
EXAMPLE_TRANSLATIONS: Dict[str, str] = {
    'ar': 'مرحبا بالعالم!',
    'de': 'Hallo, Welt!',
    'en': 'Hello, world!',
    'es': '¡Hola, mundo!',
    'fr': 'Bonjour, le monde !',
    'hi': 'नमस्ते, दुनिया!',
    'it': 'Ciao, mondo!',
    'ja': 'こんにちは、世界！',
    'ko': '안녕하세요, 세계!',
    'ml': 'ഹലോ, ലോകം!',
    'nl': 'Hallo, wereld!',
    'pt': 'Olá, mundo!',
    'ru': 'Привет, мир!',
    'zh': '你好，世界！',
}


def language_name(code: str) -> str:
    """Maps an ISO 639-1 code to a display name, falling back to the code."""
    return LANGUAGE_NAMES.get(code, code)


def normalize_language_code(value: str) -> str:
    """
    Turns a detected language into an ISO 639-1 code.

    Speech APIs report either a code ("en") or an English name ("english").
    Unknown names are returned lower-cased.
    """
    value = (value or '').strip().lower()
    if not value:
        return ''
    if value in LANGUAGE_NAMES:
        return value
    return _CODES_BY_NAME.get(value, value)


def build_translation_prompt(source_language: str, target_language: str) -> str:
    """Builds the fixed instruction text that precedes every subtitle batch."""
    rules = TRANSLATION_RULES.get(target_language, '')
    prompt = (
        f"Translate the following subtitles from {language_name(source_language)} "
        f"to {language_name(target_language)}. Preserve the SRT format exactly, including "
        f"numbering and timestamps. Only translate the subtitle text. Do not alter any numbers "
        f"or timestamps, and return exactly as many subtitles as you receive. Do not include "
        f"any markdown or code block syntax in your response."
    )
    if rules:
        prompt += f" Apply the following translation rules:\n\n{rules}"
    example_reply = f"{INTERCHANGE_TIMING}\n{EXAMPLE_TRANSLATIONS.get(target_language, EXAMPLE_TRANSLATIONS['ja'])}"
    prompt += (
        f"\n\nExample:\n\n{INTERCHANGE_EXAMPLE}\n\nTranslated Example:\n\n{example_reply}"
        f"\n\nNow, translate the following subtitles:"
    )
    return prompt


def build_messages(prompt: str, batch_text: str) -> List[Dict[str, str]]:
    """Chat messages for one translation request."""
    return [{'role': 'user', 'content': f"{prompt}\n\n{batch_text}"}]
