"""
HuggingFace backend - local chat model for drafting

Only imported when LLM_PROVIDER=huggingface (needs the local-llm extra).
Runs on CUDA with NF4 4-bit weights by default; CPU works for small
models without quantization.
"""

import logging
import time
from typing import Any, Dict, List

import torch
from transformers import AutoModelForCausalLM, AutoTokenizer, BitsAndBytesConfig

logger = logging.getLogger(__name__)

DEVICE_CUDA = "cuda"
DEVICE_CPU = "cpu"
DEVICE_MAP_AUTO = "auto"


def _nf4_config() -> BitsAndBytesConfig:
    return BitsAndBytesConfig(
        load_in_4bit=True,
        bnb_4bit_quant_type="nf4",
        bnb_4bit_compute_dtype=torch.bfloat16,
        bnb_4bit_use_double_quant=True
    )


class HuggingFaceClient:
    """Chat completions from a locally loaded causal LM"""

    def __init__(self, model_name: str, load_in_4bit: bool = True, device: str = DEVICE_CUDA) -> None:
        """
        Args:
            model_name: Hub id of a model that ships a chat template
            load_in_4bit: Quantize weights to NF4 (ignored on CPU)
            device: "cuda" or "cpu"

        Raises:
            ValueError: If device is neither "cuda" nor "cpu"
            RuntimeError: If CUDA is requested but unavailable
            torch.cuda.OutOfMemoryError: If the weights don't fit on the GPU
        """
        if device not in (DEVICE_CUDA, DEVICE_CPU):
            raise ValueError(f"device must be '{DEVICE_CUDA}' or '{DEVICE_CPU}', got '{device}'")
        if device == DEVICE_CUDA and not torch.cuda.is_available():
            raise RuntimeError("HF_DEVICE=cuda but torch sees no CUDA device")

        self.model_name = model_name
        self.device = device
        self.quantized = load_in_4bit and device == DEVICE_CUDA

        started = time.time()
        self.tokenizer = self._load_tokenizer()
        self.model = self._load_model()
        logger.info(
            f"Loaded {model_name} on {device} "
            f"({'nf4' if self.quantized else 'full precision'}) in {time.time() - started:.1f}s"
        )
        self._log_cuda_memory("after load")

    def _load_tokenizer(self):
        tokenizer = AutoTokenizer.from_pretrained(self.model_name)
        # generate() warns without a pad token
        if tokenizer.pad_token is None:
            tokenizer.pad_token = tokenizer.eos_token
        return tokenizer

    def _load_model(self):
        try:
            model = AutoModelForCausalLM.from_pretrained(
                self.model_name,
                quantization_config=_nf4_config() if self.quantized else None,
                device_map=DEVICE_MAP_AUTO if self.device == DEVICE_CUDA else None,
                torch_dtype=torch.bfloat16 if self.device == DEVICE_CUDA else torch.float32
            )
        except torch.cuda.OutOfMemoryError:
            logger.error(f"Out of GPU memory loading {self.model_name}; try HF_LOAD_IN_4BIT=true or a smaller model")
            raise
        model.eval()
        return model

    def _log_cuda_memory(self, stage: str) -> None:
        if self.device != DEVICE_CUDA:
            return
        allocated = torch.cuda.memory_allocated() / 1e9
        reserved = torch.cuda.memory_reserved() / 1e9
        logger.info(f"GPU memory {stage}: {allocated:.2f}GB allocated / {reserved:.2f}GB reserved")

    def is_loaded(self) -> bool:
        return getattr(self, "model", None) is not None

    def complete(self, messages: List[Dict[str, str]], max_tokens: int = 512, temperature: float = 0.3) -> str:
        """
        Generate the assistant reply to `messages`.

        Temperature 0 means greedy decoding. Only the new tokens are
        decoded, the prompt is not echoed back.
        """
        prompt = self.tokenizer.apply_chat_template(messages, add_generation_prompt=True, return_tensors="pt")
        prompt = prompt.to(self.model.device)
        prompt_length = prompt.shape[-1]

        sampling: Dict[str, Any] = {'do_sample': False}
        if temperature > 0:
            sampling = {'do_sample': True, 'temperature': temperature}

        started = time.time()
        try:
            with torch.no_grad():
                output = self.model.generate(
                    prompt,
                    max_new_tokens=max_tokens,
                    pad_token_id=self.tokenizer.pad_token_id,
                    **sampling
                )
        except torch.cuda.OutOfMemoryError:
            logger.error(f"Out of GPU memory generating (prompt {prompt_length} tokens, max_new_tokens {max_tokens})")
            raise

        new_tokens = output[0][prompt_length:]
        logger.debug(f"{len(new_tokens)} tokens in {(time.time() - started) * 1000:.0f}ms")
        return self.tokenizer.decode(new_tokens, skip_special_tokens=True)

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "provider": "huggingface",
            "model_name": self.model_name,
            "device": self.device,
            "quantized": self.quantized,
            "is_loaded": self.is_loaded()
        }
