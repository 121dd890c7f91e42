"""
Response Templates
==================

Localized strings the assistant speaks back to the farmer.

The engine never generates free text: every sentence it emits comes
from these templates, in English or Hindi.
"""

from typing import Dict, List

# === 1. CONVERSATION TURNS ===
GREETING = {
    "en": "I understand. Let's quickly figure this out.",
    "hi": "मैं समझ गया। आइए इसे जल्दी से समझते हैं।",
}

ACKNOWLEDGEMENT = {
    "en": "I noticed: {symptoms}",
    "hi": "मैंने देखा: {symptoms}",
}

IDENTIFIED = {
    "en": "I think I've identified it. Let me prepare a recommendation for you.",
    "hi": "मुझे लगता है कि मुझे पता चल गया है। आइए मैं आपको सिफारिश तैयार करूं।",
}

OPEN_PROMPT = {
    "en": "Please tell me what problem you are seeing?",
    "hi": "कृपया मुझे बताएं कि आपको क्या समस्या दिख रही है?",
}

NO_EVIDENCE = {
    "en": "No diagnosis available yet. Please provide more information about symptoms.",
    "hi": "अभी तक कोई निदान उपलब्ध नहीं है। कृपया लक्षणों के बारे में और जानकारी दें।",
}

TRY_AGAIN = {
    "en": "An error occurred while processing your request. Please try again.",
    "hi": "आपके अनुरोध को संसाधित करते समय एक त्रुटि हुई। कृपया पुनः प्रयास करें।",
}

# === 2. CONFIDENCE BANDS ===
CONFIDENCE_LEVELS = {
    "high": {"en": "High", "hi": "उच्च"},
    "moderate": {"en": "Moderate", "hi": "मध्यम"},
    "low": {"en": "Low", "hi": "कम"},
}

CONFIDENCE_SENTENCES = {
    "high": {
        "en": "I am highly confident in this diagnosis.",
        "hi": "मुझे इस निदान में बहुत विश्वास है।",
    },
    "moderate": {
        "en": "This diagnosis is likely, but please proceed with caution.",
        "hi": "यह निदान संभावित है, लेकिन कृपया सावधानी से आगे बढ़ें।",
    },
    "low": {
        "en": "I am not fully confident in this diagnosis.",
        "hi": "मुझे इस निदान में पूरा विश्वास नहीं है।",
    },
}

# === 3. ADVISORY SECTIONS ===
HEADINGS = {
    "diagnosis": {"en": "Diagnosis", "hi": "निदान"},
    "confidence": {"en": "Confidence Level", "hi": "विश्वास स्तर"},
    "description": {"en": "Description", "hi": "विवरण"},
    "treatment": {"en": "Treatment", "hi": "उपचार"},
    "prevention": {"en": "Prevention", "hi": "रोकथाम"},
}

ESCALATION = {
    "en": (
        "⚠️ Recommendation: Please consult a local agricultural expert or Krishi Vigyan Kendra. "
        "You can also call Kisan Call Centre at 1800-180-1551."
    ),
    "hi": (
        "⚠️ सिफारिश: कृपया किसी स्थानीय कृषि विशेषज्ञ या कृषि विज्ञान केंद्र से परामर्श लें। "
        "आप किसान कॉल सेंटर को 1800-180-1551 पर भी कॉल कर सकते हैं।"
    ),
}

DISCLAIMER = {
    "en": (
        "📋 Disclaimer: This advisory is for informational purposes only. "
        "Please consult local agricultural experts before implementing any treatment."
    ),
    "hi": (
        "📋 अस्वीकरण: यह सलाह केवल सूचनात्मक उद्देश्यों के लिए है। "
        "किसी भी उपचार को लागू करने से पहले कृपया स्थानीय कृषि विशेषज्ञों से परामर्श लें।"
    ),
}


def say(template: Dict[str, str], language: str, **kwargs) -> str:
    """Render a template in the given language (English fallback)."""
    text = template.get(language) or template["en"]
    return text.format(**kwargs) if kwargs else text


def format_recommendation(
    disease_name: str,
    band: str,
    confidence_score: float,
    description: str,
    treatment: str,
    prevention: str,
    escalated: bool,
    language: str,
) -> str:
    """
    Format the advisory body in its fixed section order.

    Args:
        band: "high", "moderate" or "low"
        escalated: include the expert-consultation paragraph
    """
    h = {key: say(value, language) for key, value in HEADINGS.items()}

    parts: List[str] = [
        f"🌾 {h['diagnosis']}: {disease_name}",
        f"📊 {h['confidence']}: {say(CONFIDENCE_LEVELS[band], language)} "
        f"({confidence_score * 100:.0f}%)\n{say(CONFIDENCE_SENTENCES[band], language)}",
        f"📝 {h['description']}:\n{description}",
        f"💊 {h['treatment']}:\n{treatment}",
        f"🛡️ {h['prevention']}:\n{prevention}",
    ]

    if escalated:
        parts.append(say(ESCALATION, language))

    parts.append(say(DISCLAIMER, language))

    return "\n\n".join(parts)
