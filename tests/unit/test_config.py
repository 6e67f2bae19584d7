"""
Unit tests for settings validation
"""
import pytest
from pydantic import ValidationError

from energy_modeller.config import Settings


class TestDefaultLoads:
    """Test the assumed CPU and accelerator loads"""

    @pytest.mark.parametrize("load", [-1, 0.0, 0.6, 1.0])
    def test_valid_cpu_load(self, load):
        """Test -1 and fractions within [0, 1] are accepted"""
        assert Settings(DEFAULT_CPU_LOAD=load).DEFAULT_CPU_LOAD == load

    @pytest.mark.parametrize("load", [1.5, -0.5, 100.0])
    def test_invalid_cpu_load(self, load):
        """Test CPU loads outside [0, 1] are rejected"""
        with pytest.raises(ValidationError):
            Settings(DEFAULT_CPU_LOAD=load)

    @pytest.mark.parametrize("load", [-1, 0.0, 1.0, 100.0])
    def test_accelerator_load_in_grouping_units(self, load):
        """Test a busy accelerator can be assumed with a percentage grouping"""
        assert Settings(DEFAULT_ACCELERATOR_LOAD=load).DEFAULT_ACCELERATOR_LOAD == load

    def test_negative_accelerator_load(self):
        """Test negative accelerator loads other than -1 are rejected"""
        with pytest.raises(ValidationError):
            Settings(DEFAULT_ACCELERATOR_LOAD=-5.0)


class TestBounds:
    """Test positive integer settings"""

    def test_cache_size_must_be_positive(self):
        """Test a model cache of size 0 is rejected"""
        with pytest.raises(ValidationError):
            Settings(MODEL_CACHE_MAX_SIZE=0)

    def test_observe_window(self):
        """Test the CPU observation window combines minutes and seconds"""
        settings = Settings(CPU_OBSERVE_MINUTES=2, CPU_OBSERVE_SECONDS=30)
        assert settings.cpu_observe_window_seconds == 150
