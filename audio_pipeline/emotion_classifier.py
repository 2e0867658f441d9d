"""
Speech emotion classification using a pretrained transformer.

Engineering decision: HuBERT fine-tuned for emotion recognition
- Default model 'superb/hubert-base-superb-er' (IEMOCAP 4-class: neu/hap/ang/sad)
- Any HuggingFace audio-classification checkpoint or local directory works;
  the label vocabulary comes from the checkpoint's id2label
- Loaded exactly once at construction; a load failure is fatal and is not
  retried

The classifier only ranks labels for a single segment. Segmenting, ordering
and timeline assembly live in emotion_timeline.
"""

import logging
from typing import Dict, Optional, Tuple

import librosa
import numpy as np
import torch
from transformers import AutoFeatureExtractor, AutoModelForAudioClassification

from utils.errors import ModelLoadError

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "superb/hubert-base-superb-er"

# Short codes used by common emotion checkpoints
LABEL_ALIASES: Dict[str, str] = {
    'neu': 'neutral',
    'hap': 'happy',
    'ang': 'angry',
    'sad': 'sad',
    'fea': 'fearful',
    'fear': 'fearful',
    'dis': 'disgust',
    'sur': 'surprised',
    'cal': 'calm',
    'exc': 'excited',
    'fru': 'frustrated',
}


def normalize_label(label: str, aliases: Optional[Dict[str, str]] = None) -> str:
    """Map a model label to its readable form; unknown labels pass through."""
    aliases = LABEL_ALIASES if aliases is None else aliases
    key = str(label).strip().lower()
    return aliases.get(key, key)


class EmotionClassifier:
    """
    Top-1 emotion classification of short audio segments.

    Usage:
        classifier = EmotionClassifier()
        label, score = classifier.classify(segment, sample_rate=16000)
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        device: Optional[str] = None,
        label_aliases: Optional[Dict[str, str]] = None
    ):
        """
        Load the emotion model.

        Args:
            model_name: HuggingFace model identifier or local path
            device: Device for inference ('cuda', 'cpu', or None for auto)
            label_aliases: Override for label normalization

        Raises:
            ModelLoadError: If the model or feature extractor cannot be loaded
        """
        self.model_name = model_name
        self.device = device or ('cuda' if torch.cuda.is_available() else 'cpu')
        self.label_aliases = label_aliases

        logger.info(f"Loading emotion model {model_name} on {self.device}")

        try:
            self.feature_extractor = AutoFeatureExtractor.from_pretrained(model_name)
            self.model = AutoModelForAudioClassification.from_pretrained(model_name)
            self.model.to(self.device)
        except (OSError, ValueError, RuntimeError) as e:
            raise ModelLoadError(
                f"Failed to load emotion model '{model_name}': {e}",
                details={'model_name': model_name}
            ) from e

        self.model.eval()  # Inference mode

        self.sample_rate = int(getattr(self.feature_extractor, 'sampling_rate', 16000))
        self.id2label = {int(k): v for k, v in self.model.config.id2label.items()}

        logger.info(
            f"✓ Emotion model loaded: labels "
            f"{[normalize_label(v, label_aliases) for v in self.id2label.values()]}"
        )

    def classify(self, waveform: np.ndarray, sample_rate: int) -> Tuple[str, float]:
        """
        Classify one audio segment.

        Args:
            waveform: Mono audio samples
            sample_rate: Sample rate of waveform (resampled if different)

        Returns:
            Tuple of (label, probability) for the top-ranked class
        """
        if sample_rate != self.sample_rate:
            waveform = librosa.resample(
                waveform,
                orig_sr=sample_rate,
                target_sr=self.sample_rate
            )

        inputs = self.feature_extractor(
            waveform,
            sampling_rate=self.sample_rate,
            return_tensors="pt",
            padding=True
        )
        inputs = {k: v.to(self.device) for k, v in inputs.items()}

        with torch.no_grad():
            logits = self.model(**inputs).logits

        probs = torch.softmax(logits, dim=-1)[0]
        idx = int(torch.argmax(probs).item())

        return normalize_label(self.id2label[idx], self.label_aliases), float(probs[idx].item())


def create_emotion_classifier(config: Optional[dict] = None) -> EmotionClassifier:
    """Build the classifier from the ``audio.model`` config section."""
    section = (((config or {}).get('audio', {}) or {}).get('model', {})) or {}
    return EmotionClassifier(
        model_name=section.get('name', DEFAULT_MODEL_NAME),
        device=section.get('device')
    )
