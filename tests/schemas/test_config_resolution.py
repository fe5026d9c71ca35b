"""Test config resolution and validation with Pydantic."""

import pytest
from pydantic import ValidationError

from connflow.schemas import ParamConfig, UserConfig, InternalConfig, deep_merge
from connflow.schemas.resolve import resolve_config


class TestConfigResolution:
    """Test resolve_config() precedence and merging."""

    def test_resolve_config_all_defaults(self):
        """Resolving with no user/CLI overrides uses all ParamConfig defaults."""
        config = resolve_config(ParamConfig(), None, None)

        assert isinstance(config, InternalConfig)
        assert config.subject is None
        assert config.runner.mode == "resume"
        assert config.runner.failure_policy == "fail_fast"
        assert config.tractography.streamlines == "10M"
        assert config.templates.atlas_label == "schaefer400"
        assert config.dwi.readout_time == 0.0836197
        assert config.segmentation.wm_label == 3

    def test_user_flat_aliases_override_defaults(self):
        user = UserConfig(STREAMLINES="5M", READOUT_TIME=0.05, BIDS_DIR="/data/BIDS")
        config = resolve_config(ParamConfig(), user, None)

        assert config.tractography.streamlines == "5M"
        assert config.dwi.readout_time == 0.05
        assert config.paths.bids_dir == "/data/BIDS"
        # untouched sibling keeps its default
        assert config.paths.derivatives_dir == "./derivatives"

    def test_nested_section_overrides(self):
        user = UserConfig(tractography={"cutoff": 0.05}, n4={"shrink_factor": 2})
        config = resolve_config(ParamConfig(), user, None)

        assert config.tractography.cutoff == 0.05
        assert config.tractography.streamlines == "10M"
        assert config.n4.shrink_factor == 2

    def test_nested_value_wins_over_flat_alias(self):
        user = UserConfig(STREAMLINES="5M", tractography={"streamlines": "2M"})
        config = resolve_config(ParamConfig(), user, None)

        assert config.tractography.streamlines == "2M"

    def test_dict_user_config(self):
        config = resolve_config(ParamConfig(), {"MODE": "force", "ATLAS_LABEL": "aal"}, None)

        assert config.runner.mode == "force"
        assert config.templates.atlas_label == "aal"

    def test_empty_user_config_uses_all_param_defaults(self):
        assert resolve_config(ParamConfig(), UserConfig(), None) == resolve_config(ParamConfig())

    def test_tool_overrides(self):
        user = UserConfig(tools={"overrides": {"dwifslpreproc": "/opt/bin/dwifslpreproc"},
                                 "env": {"FSLOUTPUTTYPE": "NIFTI_GZ"}})
        config = resolve_config(ParamConfig(), user, None)

        assert config.tools.overrides == {"dwifslpreproc": "/opt/bin/dwifslpreproc"}
        assert config.tools.env["FSLOUTPUTTYPE"] == "NIFTI_GZ"


class TestValidation:

    def test_unknown_nested_key_rejected(self):
        user = UserConfig(n4={"shrink_factr": 2})
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), user, None)

    def test_unknown_top_level_key_ignored(self):
        user = UserConfig.model_validate({"SCANNER": "Prisma", "STREAMLINES": "1M"})
        assert user.streamlines == "1M"

    def test_max_length_must_exceed_min_length(self):
        user = UserConfig(tractography={"min_length": 300})
        with pytest.raises(ValueError, match="must exceed"):
            resolve_config(ParamConfig(), user, None)

    def test_invalid_choice_rejected(self):
        with pytest.raises(ValidationError):
            UserConfig(MODE="sometimes")
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(PE_DIR="XY"), None)

    def test_readout_time_must_be_positive(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(READOUT_TIME=0), None)

    def test_param_config_rejects_extra_fields(self):
        with pytest.raises(ValidationError):
            ParamConfig(unknown_section={})

    def test_internal_config_is_frozen(self, internal_config):
        with pytest.raises(ValidationError):
            internal_config.subject = "sub-002"

    def test_for_subject_returns_copy(self, internal_config):
        config = internal_config.for_subject("sub-007")

        assert config.subject == "sub-007"
        assert internal_config.subject is None
        assert config.tractography == internal_config.tractography


class TestUserNormalization:

    @pytest.mark.parametrize("given, expected", [
        ("001", "sub-001"),
        ("sub-001", "sub-001"),
        (" sub-002/ ", "sub-002"),
        (12, "sub-12"),
    ])
    def test_subject_normalized(self, given, expected):
        assert UserConfig(SUBJECT=given).subject == expected

    def test_case_insensitive_choices(self):
        user = UserConfig(MODE="FORCE", FAILURE_POLICY="Skip_Dependents",
                          LOG_LEVEL="debug", PE_DIR="ap")

        assert user.mode == "force"
        assert user.failure_policy == "skip_dependents"
        assert user.log_level == "DEBUG"
        assert user.pe_dir == "AP"

    def test_streamlines_accepts_integer(self):
        config = resolve_config(ParamConfig(), UserConfig(STREAMLINES=5000000), None)
        assert config.tractography.streamlines == "5000000"

    def test_populate_by_field_name(self):
        user = UserConfig(bids_dir="/bids", streamlines="1M")
        assert user.bids_dir == "/bids"
        assert user.streamlines == "1M"


def test_deep_merge_nested():
    base = {"a": 1, "b": {"c": 2, "d": 3}}
    result = deep_merge(base, {"b": {"d": 4, "e": 5}}, {"f": 6})

    assert result == {"a": 1, "b": {"c": 2, "d": 4, "e": 5}, "f": 6}
    assert base == {"a": 1, "b": {"c": 2, "d": 3}}
