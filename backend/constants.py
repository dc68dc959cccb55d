"""
CONSTANTS
---------
Single source of truth for behavioral invariants of the assistant core.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- Deployment-specific values (keys, model overrides) belong in config.py.
- Other modules import from this file instead of repeating literals.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Transport Audio Format
# =============================================================================

# Outbound (mic -> service): PCM16 LE mono @ 16kHz, base64 framed
OUTBOUND_SAMPLE_RATE_HZ: Final[int] = 16_000
# Inbound (service -> speaker): PCM16 LE mono @ 24kHz, base64 framed
INBOUND_SAMPLE_RATE_HZ: Final[int] = 24_000

AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# int16 scaling: negative samples use the full negative range
PCM16_NEGATIVE_SCALE: Final[float] = 32768.0
PCM16_POSITIVE_SCALE: Final[float] = 32767.0

OUTBOUND_MIME_TYPE: Final[str] = f"audio/pcm;rate={OUTBOUND_SAMPLE_RATE_HZ}"

# Capture is delivered in fixed-size windows; the pump runs once per window.
CAPTURE_BUFFER_SAMPLES: Final[int] = 4096

# Windows waiting for the pump; newer windows are dropped beyond this (~0.7s @ 48kHz)
CAPTURE_QUEUE_MAX_WINDOWS: Final[int] = 8

# Browser capture is typically 48kHz
BROWSER_CAPTURE_SAMPLE_RATE_HZ_DEFAULT: Final[int] = 48_000

# =============================================================================
# Chat Generation
# =============================================================================

CHAT_MODEL_HIERARCHY: Final[Tuple[str, ...]] = (
    "gemini-3-flash-preview",
    "gemini-2.0-flash-exp",
)

CHAT_MAX_ATTEMPTS_PER_MODEL: Final[int] = 3
CHAT_RETRY_BASE_DELAY_MS: Final[int] = 1_500

IMAGE_MIME_TYPE: Final[str] = "image/jpeg"

# Used when the caller sends an image without any text
DEFAULT_IMAGE_PROMPT: Final[str] = "Analyse this"

HEALTH_SYSTEM_INSTRUCTION: Final[str] = """You are an expert AI Health Assistant with advanced multilingual capabilities.
Analyze symptoms provided via text or images and provide detailed, professional, and empathetic health advice.

**LANGUAGE DETECTION & RESPONSE PROTOCOL**:
1. **Detect Language**: Identify if the user is communicating in English, Hindi (Devanagari script), or Hinglish.
2. **Respond in Kind**: Respond in the SAME language as the user's input.
3. **Consistency**: Ensure the entire response is consistent in language.

**Formatting**:
*   **Summary**: A direct, reassuring 1-sentence summary.
*   **Detailed Analysis**: Paragraphs with **bold** key terms.
*   **Actionable Steps**: Bullet points.
*   **Safety**: Always advise consulting a doctor.

**Suggested Questions**:
At the very end, add "---SUGGESTIONS---" followed by 3 short follow-up questions separated by "|" pipe."""

# Terminal user-visible messages, one per failure class
CHAT_ERROR_CREDENTIAL: Final[str] = (
    "Your API key was rejected. Please update it and try again."
)
CHAT_ERROR_BUSY: Final[str] = (
    "The health assistant is busy right now. Please wait a moment and try again."
)
CHAT_ERROR_OTHER: Final[str] = (
    "I encountered a network issue. Please check your internet connection and try again."
)

# =============================================================================
# Response Envelope
# =============================================================================

SUGGESTIONS_DELIMITER: Final[str] = "---SUGGESTIONS---"
SUGGESTIONS_SEPARATOR: Final[str] = "|"

# =============================================================================
# Quotes
# =============================================================================

QUOTE_MODEL: Final[str] = "gemini-2.0-flash-exp"
QUOTE_PROMPT: Final[str] = (
    "Generate a single, short, motivating health quote. No author names."
)

LOCAL_QUOTES: Final[Tuple[str, ...]] = (
    "Health is the greatest wealth.",
    "Take care of your body. It's the only place you have to live.",
    "A healthy outside starts from the inside.",
    "Your health is an investment, not an expense.",
    "Wellness is the complete integration of body, mind, and spirit.",
)

# =============================================================================
# Speech Synthesis
# =============================================================================

SPEECH_MODEL: Final[str] = "gemini-2.5-flash-preview-tts"
SPEECH_VOICE: Final[str] = "Puck"
SPEECH_TIMEOUT_S: Final[float] = 30.0

# Sentence boundaries used to split replies before synthesis (incl. Devanagari danda)
SPEECH_SENTENCE_BREAK_CHARS: Final[Tuple[str, ...]] = (".", "!", "?", "।", "\n")

# Sentences are merged until a chunk reaches this many characters
SPEECH_MIN_CHUNK_CHARS: Final[int] = 40

# Markdown characters removed before synthesis
SPEECH_STRIP_CHARS: Final[str] = "#*`"

# =============================================================================
# Live Session
# =============================================================================

LIVE_MODEL: Final[str] = "gemini-2.5-flash-native-audio-preview-09-2025"
LIVE_VOICE: Final[str] = "Kore"
LIVE_RESPONSE_MODALITY: Final[str] = "AUDIO"

LIVE_SYSTEM_INSTRUCTION: Final[str] = (
    "You are an advanced AI Health Consultant named 'Aura'.\n"
    "Your role is to listen to health concerns and provide professional guidance.\n"
    "Keep responses concise and conversational.\n"
    "If the user speaks Hindi, reply in Hindi."
)

LIVE_WS_URL: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
LIVE_SETUP_TIMEOUT_S: Final[float] = 15.0
LIVE_WS_MAX_MESSAGE_BYTES: Final[int] = 2**24

# Reconnect budget and delay: 1000ms + 500ms * attempt
LIVE_MAX_RETRIES: Final[int] = 3
LIVE_RECONNECT_BASE_DELAY_MS: Final[int] = 1_000
LIVE_RECONNECT_STEP_DELAY_MS: Final[int] = 500

# User-facing status strings
STATUS_READY: Final[str] = "Ready to Connect"
STATUS_REQUESTING_MIC: Final[str] = "Requesting Mic Access..."
STATUS_CONNECTING: Final[str] = "Connecting to AI..."
STATUS_ACTIVE: Final[str] = "Live Session Active"
STATUS_UNSTABLE: Final[str] = "Network unstable. Connection dropped."
STATUS_CREDENTIAL_INVALID: Final[str] = "API key rejected. Please update it and retry."

# =============================================================================
# Remote Service
# =============================================================================

GEMINI_OPENAI_BASE_URL: Final[str] = (
    "https://generativelanguage.googleapis.com/v1beta/openai/"
)

# Native REST surface; speech synthesis is only served here (AUDIO response modality)
GEMINI_NATIVE_BASE_URL: Final[str] = "https://generativelanguage.googleapis.com/v1beta/"

# Substrings the service uses when it rejects a key with a 400 / close frame
CREDENTIAL_REJECTION_MARKERS: Final[Tuple[str, ...]] = (
    "API key not valid",
    "API_KEY_INVALID",
    "API key expired",
    "PERMISSION_DENIED",
)
