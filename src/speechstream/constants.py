"""Core constants for the speechstream client.

CTC acoustic models in the wav2vec2 family consume 16kHz mono PCM16 and emit
one frame of logits per 20ms of audio.
"""

# Audio format requirements
SAMPLE_RATE: int = 16000  # Hz - default expected by most CTC models
BYTES_PER_SAMPLE: int = 2  # 16-bit PCM
INT16_MIN: int = -32768
INT16_MAX: int = 32767

# Frame size: 20ms at 16kHz (one logit frame)
FRAME_MS: int = 20
FRAME_SAMPLES: int = 320  # 16000 * 0.020

# Recommended streaming chunk: 320ms (16 frames)
CHUNK_MS: int = 320
CHUNK_SAMPLES: int = 5120  # 16000 * 0.320
CHUNK_BYTES: int = 10240  # 5120 * 2 bytes

# Decoder defaults
DEFAULT_BEAM_WIDTH: int = 500
DEFAULT_LM_ALPHA: float = 0.93  # language model weight
DEFAULT_LM_BETA: float = 1.18  # word insertion weight
