"""Unit tests for request normalization."""

import logging

import pytest

from imagegate.core.errors import PromptRequiredError, ValidationError
from imagegate.core.options import GenerationOptions, normalize_request, parse_request_body


class TestPrompt:
    """Tests for the required prompt field."""

    def test_valid_prompt_is_forwarded(self):
        """A plain prompt produces options carrying just that prompt."""
        options = normalize_request({"prompt": "a red fox"})
        assert options == GenerationOptions(prompt="a red fox")

    def test_prompt_is_forwarded_untrimmed(self):
        """Whitespace is only stripped for the emptiness check."""
        options = normalize_request({"prompt": "  a red fox \n"})
        assert options.prompt == "  a red fox \n"

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"prompt": ""},
            {"prompt": "   \t\n"},
            {"prompt": None},
            {"prompt": 42},
            {"prompt": ["a red fox"]},
            {"negative_prompt": "blurry"},
        ],
    )
    def test_missing_or_invalid_prompt_raises(self, body):
        """Anything but a non-blank string is a missing prompt."""
        with pytest.raises(PromptRequiredError, match="Prompt is required"):
            normalize_request(body)

    @pytest.mark.parametrize("body", [None, [], ["prompt"], "a red fox", 7])
    def test_non_object_body_raises(self, body):
        """A body that is not a JSON object carries no prompt."""
        with pytest.raises(PromptRequiredError):
            normalize_request(body)

    def test_prompt_required_is_validation_error(self):
        """PromptRequiredError is handled as a ValidationError."""
        assert issubclass(PromptRequiredError, ValidationError)

    def test_unknown_keys_are_ignored(self):
        """Extra keys neither fail nor leak into the options."""
        options = normalize_request({"prompt": "x", "model": "other", "steps": 4})
        assert options.to_payload() == {"prompt": "x"}


class TestDimensions:
    """Tests for height and width."""

    @pytest.mark.parametrize("field", ["height", "width"])
    @pytest.mark.parametrize("value", [256, 1024, 2048])
    def test_in_range_values_are_kept(self, field, value):
        options = normalize_request({"prompt": "x", field: value})
        assert getattr(options, field) == value

    @pytest.mark.parametrize("field", ["height", "width"])
    @pytest.mark.parametrize("value", [255, 2049, 0, -512, 99999])
    def test_out_of_range_values_are_dropped(self, field, value):
        options = normalize_request({"prompt": "x", field: value})
        assert getattr(options, field) is None

    @pytest.mark.parametrize("field", ["height", "width"])
    @pytest.mark.parametrize("value", ["1024", True, 1024.5, [1024], {"px": 1024}])
    def test_wrong_types_are_dropped(self, field, value):
        options = normalize_request({"prompt": "x", field: value})
        assert getattr(options, field) is None

    def test_integral_float_is_accepted_as_int(self):
        options = normalize_request({"prompt": "x", "height": 512.0})
        assert options.height == 512
        assert isinstance(options.height, int)


class TestNumSteps:
    """Tests for num_steps."""

    @pytest.mark.parametrize("value", [1, 10, 20])
    def test_bounds_are_inclusive(self, value):
        assert normalize_request({"prompt": "x", "num_steps": value}).num_steps == value

    @pytest.mark.parametrize("value", [0, 21, -1, "4", 4.2, False])
    def test_invalid_values_are_dropped(self, value):
        assert normalize_request({"prompt": "x", "num_steps": value}).num_steps is None


class TestGuidance:
    """Tests for guidance."""

    @pytest.mark.parametrize("value", [0, 0.0, 7.5, 20, 20.0])
    def test_bounds_are_inclusive(self, value):
        options = normalize_request({"prompt": "x", "guidance": value})
        assert options.guidance == float(value)
        assert isinstance(options.guidance, float)

    @pytest.mark.parametrize("value", [-0.1, 20.1, 21, float("nan"), float("inf"), "7.5", True])
    def test_invalid_values_are_dropped(self, value):
        assert normalize_request({"prompt": "x", "guidance": value}).guidance is None


class TestSeed:
    """Tests for the three-way seed domain."""

    @pytest.mark.parametrize("value", [0, 1, 42, 2**32 - 1, 2**40])
    def test_non_negative_integers_are_kept(self, value):
        assert normalize_request({"prompt": "x", "seed": value}).seed == value

    @pytest.mark.parametrize("value", [-1, -5, 1.5, "42", True, [42]])
    def test_invalid_values_are_dropped(self, value):
        assert normalize_request({"prompt": "x", "seed": value}).seed is None

    def test_null_seed_is_indistinguishable_from_absent(self):
        """Explicit null and an omitted seed forward the same payload."""
        with_null = normalize_request({"prompt": "x", "seed": None})
        without = normalize_request({"prompt": "x"})
        assert with_null == without
        assert "seed" not in with_null.to_payload()


class TestNegativePrompt:
    """Tests for negative_prompt."""

    def test_non_blank_string_is_forwarded_raw(self):
        options = normalize_request({"prompt": "x", "negative_prompt": " blurry "})
        assert options.negative_prompt == " blurry "

    @pytest.mark.parametrize("value", ["", "   ", 3, ["blurry"], False])
    def test_blank_or_wrong_type_is_dropped(self, value):
        options = normalize_request({"prompt": "x", "negative_prompt": value})
        assert options.negative_prompt is None


class TestGenerationOptions:
    """Tests for the options record itself."""

    def test_payload_omits_absent_fields(self):
        options = GenerationOptions(prompt="x", height=512, seed=0)
        assert options.to_payload() == {"prompt": "x", "height": 512, "seed": 0}

    def test_full_payload(self):
        options = normalize_request(
            {
                "prompt": "a red fox",
                "negative_prompt": "blurry",
                "height": 768,
                "width": 1280,
                "num_steps": 8,
                "guidance": 3,
                "seed": 7,
            }
        )
        assert options.to_payload() == {
            "prompt": "a red fox",
            "negative_prompt": "blurry",
            "height": 768,
            "width": 1280,
            "num_steps": 8,
            "guidance": 3.0,
            "seed": 7,
        }

    def test_options_are_immutable(self):
        options = GenerationOptions(prompt="x")
        with pytest.raises(AttributeError):
            options.height = 512

    def test_dropped_field_is_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="imagegate.core.options"):
            normalize_request({"prompt": "x", "height": 99999})
        assert "Dropping height=99999" in caplog.text


class TestParseRequestBody:
    """Tests for raw body decoding."""

    def test_valid_json(self):
        assert parse_request_body(b'{"prompt": "x"}') == {"prompt": "x"}

    @pytest.mark.parametrize(
        "raw",
        [b"", b"{not json", b"\xff\xfe\x00", b"[" * 200000],
        ids=["empty", "malformed", "not-utf8", "too-deep"],
    )
    def test_invalid_body_yields_none(self, raw):
        assert parse_request_body(raw) is None

    def test_oversized_integer_is_kept_as_float(self):
        body = parse_request_body(b'{"prompt": "x", "seed": ' + b"9" * 5000 + b"}")

        assert body["prompt"] == "x"
        assert body["seed"] == float("inf")

    def test_oversized_seed_is_dropped(self):
        body = parse_request_body(b'{"prompt": "x", "seed": ' + b"9" * 5000 + b"}")
        assert normalize_request(body).seed is None

    def test_small_integers_stay_int(self):
        body = parse_request_body(b'{"height": 512}')
        assert type(body["height"]) is int
