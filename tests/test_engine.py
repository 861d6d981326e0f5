"""
Tests for the pipeline engine.
"""

import threading

import cv2
import numpy as np
import pytest

from models.geometry import Location
from models.results import ResultKind
from pipeline.engine import PipelineConfig, PipelineEngine, RunResult, create_engine_from_config
from pipeline.errors import ConfigurationError, NotFound, StageError, TypeMismatchError
from pipeline.stages import BlurGaussian, Stage
from pipeline.vision_pipeline import VisionPipeline


class Recorder(Stage):
    """Appends its name to a shared log; optionally fails."""

    type_tag = "Recorder"

    def __init__(self, name="", log=None, fail=False, value=None, **kwargs):
        super().__init__(name, **kwargs)
        self.log = log if log is not None else []
        self.fail = fail
        self.value = value

    def process(self, ctx):
        self.log.append(self.name)
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        return self.value


@pytest.fixture
def engine():
    return PipelineEngine(config=PipelineConfig(max_iterations=10))


class TestRunBasics:
    def test_results_in_stage_order(self, engine, noisy_image):
        log = []
        stages = [
            Recorder("first", log, value=1),
            BlurGaussian(name="blur", kernel_size=5),
            Recorder("last", log, value=[1, 2]),
        ]

        result = engine.run(stages, initial_image=noisy_image)

        assert isinstance(result, RunResult)
        assert list(result.results) == ["first", "blur", "last"]
        assert set(result.timings) == {"first", "blur", "last"}
        assert all(t >= 0.0 for t in result.timings.values())
        assert result.skipped_from is None
        assert log == ["first", "last"]

    def test_result_kinds(self, engine, noisy_image):
        stages = [
            Recorder("nothing"),
            Recorder("scalar", value=3.5),
            Recorder("features", value=[1]),
            BlurGaussian(name="blur"),
        ]
        result = engine.run(stages, initial_image=noisy_image)

        assert result["nothing"].kind is ResultKind.EMPTY
        assert result["scalar"].kind is ResultKind.SCALAR
        assert result["features"].kind is ResultKind.FEATURE_LIST
        assert result["blur"].kind is ResultKind.IMAGE
        assert result.get("scalar") == 3.5
        assert result.get("missing", "default") == "default"

    def test_missing_result_lookup(self, engine):
        result = engine.run([Recorder("only")])
        with pytest.raises(NotFound):
            result["missing"]
        with pytest.raises(KeyError):
            result["missing"]

    def test_initial_image_not_modified(self, engine, noisy_image):
        original = noisy_image.copy()
        engine.run([BlurGaussian(name="blur", kernel_size=7)], initial_image=noisy_image)
        assert np.array_equal(noisy_image, original)

    def test_results_are_snapshots(self, engine, noisy_image):
        stages = [BlurGaussian(name="blur1"), BlurGaussian(name="blur2", kernel_size=9)]
        result = engine.run(stages, initial_image=noisy_image)
        assert not np.array_equal(result["blur1"].value, result["blur2"].value)
        assert np.array_equal(result["blur2"].value, result.image)

    def test_builds_from_definitions(self, engine, noisy_image):
        result = engine.run(
            [
                {"type": "ConvertColor", "name": "gray"},
                {"type": "Threshold", "name": "binary", "threshold": 128},
            ],
            initial_image=noisy_image,
        )
        assert result.image.ndim == 2
        assert result["binary"].value == 128.0

    def test_disabled_stage_skipped(self, engine):
        log = []
        stages = [Recorder("a", log), Recorder("b", log, enabled=False), Recorder("c", log)]
        result = engine.run(stages)
        assert log == ["a", "c"]
        assert list(result.results) == ["a", "c"]


class TestOverrides:
    def test_no_overrides_uses_persisted_value(self, engine, noisy_image):
        result = engine.run([BlurGaussian(name="blur", kernel_size=5)], initial_image=noisy_image)
        assert np.array_equal(result.image, cv2.GaussianBlur(noisy_image, (5, 5), 0))

    def test_number_override(self, engine, noisy_image):
        stage = BlurGaussian(name="blur", kernel_size=5)
        result = engine.run([stage], initial_image=noisy_image, overrides={"BlurGaussian.kernel_size": 7})

        assert np.array_equal(result.image, cv2.GaussianBlur(noisy_image, (7, 7), 0))
        assert stage.kernel_size == 5

    def test_even_override_forced_odd(self, engine, noisy_image):
        result = engine.run(
            [BlurGaussian(name="blur")], initial_image=noisy_image, overrides={"BlurGaussian.kernel_size": 4}
        )
        assert np.array_equal(result.image, cv2.GaussianBlur(noisy_image, (5, 5), 0))

    def test_negative_override_clamped(self, engine, noisy_image):
        log = []
        stages = [Recorder("first", log), BlurGaussian(name="blur")]
        result = engine.run(stages, initial_image=noisy_image, overrides={"BlurGaussian.kernel_size": -4})

        assert list(result.results) == ["first", "blur"]
        assert np.array_equal(result.image, cv2.GaussianBlur(noisy_image, (1, 1), 0))

    def test_length_override(self, engine, noisy_image):
        result = engine.run(
            [BlurGaussian(name="blur")],
            initial_image=noisy_image,
            overrides={"BlurGaussian.kernel_size": "0.7mm"},
            units_per_pixel=Location(0.1, 0.1, 0.0),
        )
        assert np.array_equal(result.image, cv2.GaussianBlur(noisy_image, (7, 7), 0))

    def test_length_override_uses_camera_calibration(self, make_camera, noisy_image):
        camera = make_camera(
            image=noisy_image,
            calibration={"units_per_pixel": {"x": 0.05, "y": 0.05, "z": 0.0}},
        )
        engine = PipelineEngine(camera=camera)
        result = engine.run(
            [{"type": "ImageCapture", "name": "capture", "settle_first": False},
             {"type": "BlurGaussian", "name": "blur"}],
            overrides={"BlurGaussian.kernel_size": "0.25mm"},
        )
        assert np.array_equal(result.image, cv2.GaussianBlur(noisy_image, (5, 5), 0))

    def test_override_scoped_to_property_name(self, engine, noisy_image):
        stages = [
            BlurGaussian(name="a", property_name="First"),
            BlurGaussian(name="b", property_name="Second"),
        ]
        result = engine.run(stages, initial_image=noisy_image, overrides={"Second.kernel_size": 9})
        expected_a = cv2.GaussianBlur(noisy_image, (3, 3), 0)
        assert np.array_equal(result["a"].value, expected_a)
        assert np.array_equal(result["b"].value, cv2.GaussianBlur(expected_a, (9, 9), 0))

    def test_type_mismatch_before_any_stage(self, engine, noisy_image):
        log = []
        stages = [Recorder("first", log), BlurGaussian(name="blur")]
        with pytest.raises(TypeMismatchError):
            engine.run(stages, initial_image=noisy_image, overrides={"BlurGaussian.kernel_size": "wide"})
        assert log == []

    def test_length_without_calibration_is_type_mismatch(self, engine, noisy_image):
        with pytest.raises(TypeMismatchError):
            engine.run(
                [BlurGaussian(name="blur")],
                initial_image=noisy_image,
                overrides={"BlurGaussian.kernel_size": "1mm"},
            )

    def test_unrelated_overrides_ignored(self, engine, noisy_image):
        result = engine.run(
            [BlurGaussian(name="blur", kernel_size=3)],
            initial_image=noisy_image,
            overrides={"Threshold.threshold": "wide"},
        )
        assert np.array_equal(result.image, cv2.GaussianBlur(noisy_image, (3, 3), 0))


class TestValidation:
    def test_duplicate_names(self, engine):
        log = []
        with pytest.raises(ConfigurationError):
            engine.run([Recorder("same", log), Recorder("same", log)])
        assert log == []

    def test_empty_name(self, engine):
        with pytest.raises(ConfigurationError):
            engine.run([Recorder("")])

    def test_unknown_stage_type(self, engine):
        with pytest.raises(ConfigurationError):
            engine.run([{"type": "Teleport", "name": "t"}])

    def test_repeat_target_must_be_earlier(self, engine):
        log = []
        with pytest.raises(ConfigurationError):
            engine.run([
                Recorder("a", log),
                {"type": "RepeatFrom", "name": "again", "target": "b"},
                Recorder("b", log),
            ])
        assert log == []


class TestFailures:
    def test_stage_error_keeps_earlier_results(self, engine):
        log = []
        stages = [Recorder("a", log, value=1), Recorder("b", log, value=2),
                  Recorder("boom", log, fail=True), Recorder("never", log)]

        with pytest.raises(StageError) as exc_info:
            engine.run(stages)

        error = exc_info.value
        assert error.stage_name == "boom"
        assert isinstance(error.cause, RuntimeError)
        assert error.__cause__ is error.cause
        assert list(error.results) == ["a", "b"]
        assert "boom" in error.timings
        assert log == ["a", "b", "boom"]

    def test_not_found_is_stage_failure(self, engine, noisy_image):
        with pytest.raises(StageError) as exc_info:
            engine.run(
                [{"type": "ImageRecall", "name": "recall", "image_stage_name": "missing"}],
                initial_image=noisy_image,
            )
        assert isinstance(exc_info.value.cause, NotFound)

    def test_capture_without_camera(self, engine):
        with pytest.raises(StageError):
            engine.run([{"type": "ImageCapture", "name": "capture"}])


class TestControlFlow:
    def test_skip_if_empty_ends_run(self, engine):
        log = []
        stages = [
            {"type": "FindContours", "name": "contours"},
            {"type": "SkipIfEmpty", "name": "skip", "stage_name": "contours"},
            Recorder("after", log),
        ]
        result = engine.run(stages, initial_image=np.zeros((20, 20), dtype=np.uint8))

        assert result.skipped_from == "skip"
        assert "after" not in result.results
        assert log == []

    def test_skip_if_empty_continues_when_found(self, engine, rects_image):
        log = []
        stages = [
            {"type": "FindContours", "name": "contours"},
            {"type": "SkipIfEmpty", "name": "skip", "stage_name": "contours"},
            Recorder("after", log),
        ]
        result = engine.run(stages, initial_image=rects_image)
        assert result.skipped_from is None
        assert log == ["after"]

    def test_repeat_from(self, engine):
        log = []
        stages = [
            Recorder("start", log),
            Recorder("body", log),
            {"type": "RepeatFrom", "name": "again", "target": "body", "times": 2},
            Recorder("end", log),
        ]
        result = engine.run(stages)

        assert log == ["start", "body", "body", "body", "end"]
        assert result.iterations == 2
        assert list(result.results) == ["start", "body", "again", "end"]

    def test_max_iterations(self, noisy_image):
        engine = PipelineEngine(config=PipelineConfig(max_iterations=3))
        log = []
        stages = [
            Recorder("body", log),
            {"type": "RepeatFrom", "name": "again", "target": "body", "times": 100},
        ]
        with pytest.raises(StageError) as exc_info:
            engine.run(stages)
        assert exc_info.value.stage_name == "again"
        assert log.count("body") == 4


class TestConcurrentRuns:
    def test_independent_runs(self, noisy_image, gradient_image):
        engine = PipelineEngine()
        outputs = {}
        errors = []

        def run(key, image, k):
            try:
                for _ in range(5):
                    outputs[key] = engine.run([BlurGaussian(name="blur", kernel_size=k)], initial_image=image)
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=run, args=("noisy", noisy_image, 5)),
            threading.Thread(target=run, args=("gradient", gradient_image, 9)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5.0)

        assert errors == []
        assert np.array_equal(outputs["noisy"].image, cv2.GaussianBlur(noisy_image, (5, 5), 0))
        assert np.array_equal(outputs["gradient"].image, cv2.GaussianBlur(gradient_image, (9, 9), 0))


class TestVisionPipeline:
    def test_add_remove_get(self):
        pipeline = VisionPipeline("p")
        pipeline.add(BlurGaussian(name="blur"))
        pipeline.add(Recorder("first"), index=0)

        assert [s.name for s in pipeline] == ["first", "blur"]
        assert pipeline.get("blur").kernel_size == 3

        with pytest.raises(ConfigurationError):
            pipeline.add(Recorder("blur"))

        pipeline.move("blur", 0)
        assert [s.name for s in pipeline] == ["blur", "first"]

        pipeline.remove("first")
        assert len(pipeline) == 1
        with pytest.raises(NotFound):
            pipeline.get("first")

    def test_definitions_round_trip(self):
        definitions = [
            {"type": "ConvertColor", "name": "gray"},
            {"type": "BlurGaussian", "name": "blur", "kernel_size": 5},
            {"type": "Threshold", "name": "binary", "auto": True},
        ]
        pipeline = VisionPipeline.from_definitions("p", definitions)
        assert VisionPipeline.from_definitions("p", pipeline.to_definitions()).to_definitions() == \
            pipeline.to_definitions()
        assert pipeline.to_definitions()[1] == {"type": "BlurGaussian", "name": "blur", "kernel_size": 5}

    def test_run(self, noisy_image):
        pipeline = VisionPipeline.from_definitions("p", [{"type": "BlurGaussian", "name": "blur"}])
        result = pipeline.run(PipelineEngine(), initial_image=noisy_image,
                              overrides={"BlurGaussian.kernel_size": 5})
        assert np.array_equal(result.image, cv2.GaussianBlur(noisy_image, (5, 5), 0))


class TestCreateEngineFromConfig:
    def test_reads_engine_section(self, valid_config):
        engine = create_engine_from_config(valid_config)
        assert engine.config.max_iterations == 20
        assert engine.camera is None

    def test_defaults(self):
        engine = create_engine_from_config({})
        assert engine.config == PipelineConfig()
