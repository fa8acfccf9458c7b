"""GPU detection and hardware compatibility probe."""

import platform
import re
import shutil
import subprocess
import sys
from pathlib import Path

from pydantic import BaseModel

from comfysetup.logger import get_logger
from comfysetup.models.installation import TorchDevice
from comfysetup.utils.subprocess_executor import SubprocessExecutor

logger = get_logger(__name__)

SUPPORTED_PLATFORMS = ("win32", "darwin", "linux")


class GPUInfo(BaseModel):
    """GPU and driver information."""

    has_nvidia_gpu: bool = False
    has_amd_gpu: bool = False
    is_apple_silicon: bool = False
    gpu_name: str | None = None
    driver_version: str | None = None
    rocm_version: str | None = None

    @property
    def vendor(self) -> str | None:
        if self.has_nvidia_gpu:
            return "nvidia"
        if self.has_amd_gpu:
            return "amd"
        if self.is_apple_silicon:
            return "mps"
        return None

    @property
    def recommended_device(self) -> TorchDevice:
        if self.has_nvidia_gpu:
            return TorchDevice.CUDA
        if self.has_amd_gpu:
            return TorchDevice.ROCM
        if self.is_apple_silicon:
            return TorchDevice.MPS
        return TorchDevice.CPU


class HardwareValidation(BaseModel):
    """Result of the hardware compatibility probe."""

    is_valid: bool
    gpu: str | None = None
    device: TorchDevice = TorchDevice.CPU
    error: str | None = None


class GPUDetector:
    """Detects GPU hardware and decides whether the machine can run the app."""

    def detect(self) -> GPUInfo:
        """Detect GPU hardware and return information."""
        info = GPUInfo()

        # 1. Check NVIDIA
        if shutil.which("nvidia-smi"):
            nvidia_info = self._detect_nvidia()
            if nvidia_info:
                info.has_nvidia_gpu = True
                info.gpu_name = nvidia_info.get("name")
                info.driver_version = nvidia_info["driver_version"]

        # 2. Check AMD (ROCm) - Linux Only
        elif sys.platform == "linux" and Path("/dev/kfd").exists():
            rocm_info = self._detect_rocm()
            if rocm_info:
                info.has_amd_gpu = True
                info.rocm_version = rocm_info["rocm_version"]

        # 3. Check Apple Silicon
        elif platform.system() == "Darwin" and platform.machine() == "arm64":
            info.is_apple_silicon = True
            info.gpu_name = "Apple Silicon"

        return info

    def validate_hardware(self) -> HardwareValidation:
        """Check that this machine is able to run the app at all."""
        if sys.platform not in SUPPORTED_PLATFORMS:
            return HardwareValidation(is_valid=False, error=f"Unsupported platform: {sys.platform}")

        # Intel Macs cannot run the MPS builds
        if sys.platform == "darwin" and platform.machine() != "arm64":
            return HardwareValidation(is_valid=False, error="Apple Silicon is required on macOS")

        try:
            info = self.detect()
        except OSError as e:
            logger.warning(f"GPU detection failed: {e}")
            return HardwareValidation(is_valid=True)

        logger.info(f"Hardware probe: vendor={info.vendor}, name={info.gpu_name}")
        return HardwareValidation(is_valid=True, gpu=info.vendor, device=info.recommended_device)

    def _detect_nvidia(self) -> dict[str, str | None] | None:
        """Detect NVIDIA GPU and driver version."""
        try:
            result = SubprocessExecutor.run_sync(
                "nvidia-smi", "--query-gpu=driver_version,name", "--format=csv,noheader", check=True, timeout=5
            )
            output = result.stdout.decode("utf-8", errors="replace").strip()
            if output:
                # Output format: "535.183.01, NVIDIA GeForce RTX 4090"
                parts = output.split(", ")
                return {"driver_version": parts[0], "name": parts[1] if len(parts) > 1 else None}
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
            pass
        return None

    def _detect_rocm(self) -> dict[str, str] | None:
        """Detect AMD ROCm version."""
        try:
            if shutil.which("rocm-smi"):
                result = SubprocessExecutor.run_sync("rocm-smi", "--showdriverversion", check=True, timeout=5)
                match = re.search(r"(\d+\.\d+)", result.stdout.decode("utf-8", errors="replace"))
                if match:
                    return {"rocm_version": match.group(1)}
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
            pass
        return None
