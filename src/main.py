"""
Command-line runner for vision pipelines.

Loads the layered YAML configuration, opens a camera and runs one named
pipeline against it, with run-scoped property overrides.

Usage:
    python src/main.py --config config/config.yaml --camera top --pipeline fiducial
    python src/main.py --pipeline fiducial --image board.png --set BlurGaussian.kernel_size=0.5mm

Arguments:
    --config: Path to configuration file
    --camera: Camera name (default: first configured camera)
    --pipeline: Pipeline name from the `pipelines` section
    --image: Run against a still image instead of the camera device
    --set: Property override `<property>.<parameter>=<value>` (repeatable)
    --output: Write the final working image to this path
    --list-stages: Print the available stage types and exit
"""

import os
import sys
import argparse
import dataclasses
import logging
import yaml
import cv2
from typing import Dict, Any, List, Tuple, Optional

from camera.camera import BACKENDS, create_camera
from camera.errors import CameraError
from camera.settle import SETTLE_METHODS
from models.config import Config
from models.results import ResultKind
from ops.logging import setup_logging
from pipeline import PipelineError, PropertyOverride, RunResult, VisionPipeline, create_engine_from_config
from pipeline.stages import STAGE_REGISTRY

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
VALID_ROTATIONS = (0, 90, 180, 270)
Z_MODELS = ('none', 'linear', 'polynomial')


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def _read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `default.yaml` next to the config path (checked in)
    - `config.yaml` next to the config path (local overrides)
    - plus the explicitly provided `--config` path (treated as overrides)
    """
    try:
        config_dir = os.path.dirname(config_path)
        base_path = os.path.join(config_dir, "default.yaml")
        local_overrides_path = os.path.join(config_dir, "config.yaml")

        merged: Dict[str, Any] = {}
        for path in (base_path, local_overrides_path):
            if os.path.exists(path):
                merged = _deep_merge(merged, _read_yaml(path))

        explicit = os.path.abspath(config_path)
        if os.path.exists(config_path) and explicit not in (
            os.path.abspath(base_path),
            os.path.abspath(local_overrides_path),
        ):
            merged = _deep_merge(merged, _read_yaml(config_path))

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _validate_camera(index: int, camera: Any) -> Optional[str]:
    if not isinstance(camera, dict):
        return f"cameras[{index}] must be a mapping"
    name = camera.get('name')
    if not isinstance(name, str) or not name:
        return f"cameras[{index}].name must be a non-empty string"

    backend = camera.get('backend', 'opencv')
    if backend not in BACKENDS:
        return f"camera {name}: backend must be one of: {', '.join(BACKENDS)}"
    if backend == 'image_file' and not camera.get('image_path'):
        return f"camera {name}: image_path is required for the image_file backend"
    if 'device_id' in camera:
        device_id = camera['device_id']
        if not isinstance(device_id, (int, str)):
            return f"camera {name}: device_id must be an integer (index) or string (URL)"
        if isinstance(device_id, int) and device_id < 0:
            return f"camera {name}: device_id integer must be non-negative"

    if 'resolution' in camera:
        resolution = camera['resolution']
        if not isinstance(resolution, list) or len(resolution) != 2:
            return f"camera {name}: resolution must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in resolution):
            return f"camera {name}: resolution values must be positive integers"
    if 'fps' in camera:
        if not isinstance(camera['fps'], int) or camera['fps'] <= 0:
            return f"camera {name}: fps must be a positive integer"

    transform = camera.get('transform') or {}
    if transform.get('rotate', 0) not in VALID_ROTATIONS:
        return f"camera {name}: transform.rotate must be one of: {', '.join(map(str, VALID_ROTATIONS))}"
    crop = transform.get('crop')
    if crop is not None and (not isinstance(crop, list) or len(crop) != 4):
        return f"camera {name}: transform.crop must be a list of [x, y, width, height]"

    calibration = camera.get('calibration') or {}
    if calibration.get('z_model', 'none') not in Z_MODELS:
        return f"camera {name}: calibration.z_model must be one of: {', '.join(Z_MODELS)}"

    settle = camera.get('settle') or {}
    if settle.get('method', 'none') not in SETTLE_METHODS:
        return f"camera {name}: settle.method must be one of: {', '.join(SETTLE_METHODS)}"
    return None


def _validate_pipeline(name: str, stages: Any) -> Optional[str]:
    if not isinstance(stages, list):
        return f"pipelines.{name} must be a list of stages"
    seen = set()
    for i, stage in enumerate(stages):
        if not isinstance(stage, dict):
            return f"pipelines.{name}[{i}] must be a mapping"
        if not isinstance(stage.get('type'), str) or not stage.get('type'):
            return f"pipelines.{name}[{i}].type is required"
        stage_name = stage.get('name')
        if not isinstance(stage_name, str) or not stage_name:
            return f"pipelines.{name}[{i}].name is required"
        if stage_name in seen:
            return f"pipelines.{name}: duplicate stage name {stage_name}"
        seen.add(stage_name)
    return None


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Required top-level sections
    required_sections = ['cameras', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    cameras = config.get('cameras')
    if not isinstance(cameras, list) or not cameras:
        return False, "cameras must be a non-empty list"
    names = set()
    for i, camera in enumerate(cameras):
        error = _validate_camera(i, camera)
        if error:
            return False, error
        if camera['name'] in names:
            return False, f"Duplicate camera name: {camera['name']}"
        names.add(camera['name'])

    pipelines = config.get('pipelines') or {}
    if not isinstance(pipelines, dict):
        return False, "pipelines must be a mapping of name to stage list"
    for name, stages in pipelines.items():
        error = _validate_pipeline(name, stages)
        if error:
            return False, error

    engine = config.get('engine') or {}
    if 'max_iterations' in engine:
        if not isinstance(engine['max_iterations'], int) or engine['max_iterations'] <= 0:
            return False, "engine.max_iterations must be a positive integer"

    # Validate log settings
    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def parse_overrides(assignments: Optional[List[str]]) -> Dict[str, PropertyOverride]:
    """Parse repeated `--set name.parameter=value` arguments."""
    overrides: Dict[str, PropertyOverride] = {}
    for assignment in assignments or []:
        override = PropertyOverride.parse(assignment)
        overrides[override.property_name] = override
    return overrides


def log_run_summary(pipeline_name: str, result: RunResult) -> None:
    logging.info(
        f"Pipeline {pipeline_name}: {len(result.results)} results in "
        f"{result.total_time * 1000:.1f} ms"
        + (f" (ended early at {result.skipped_from})" if result.skipped_from else "")
    )
    for name, named in result.results.items():
        elapsed = result.timings.get(name, 0.0) * 1000
        value = named.value
        if named.kind is ResultKind.FEATURE_LIST:
            summary = f"{len(value)} items"
        elif named.kind is ResultKind.IMAGE:
            summary = f"image {value.shape}"
        else:
            summary = repr(value)
        logging.info(f"  {name:<20} {named.kind.value:<12} {elapsed:8.2f} ms  {summary}")


def run_pipeline(
    config: Dict[str, Any],
    pipeline_name: str,
    camera_name: Optional[str] = None,
    image_path: Optional[str] = None,
    overrides: Optional[Dict[str, PropertyOverride]] = None,
) -> RunResult:
    """
    Open the camera, run one pipeline and close the camera.

    Raises:
        ValueError: Unknown camera or pipeline name.
        CameraError: The camera failed to open or capture.
        PipelineError: The pipeline is malformed or a stage failed.
    """
    cfg = Config.from_dict(config)
    camera_cfg = cfg.get_camera(camera_name)
    if camera_cfg is None:
        raise ValueError(f"Unknown camera: {camera_name}")
    if pipeline_name not in cfg.pipelines:
        raise ValueError(f"Unknown pipeline: {pipeline_name}. Available: {', '.join(cfg.pipelines)}")
    if image_path:
        camera_cfg = dataclasses.replace(camera_cfg, backend="image_file", image_path=image_path)

    pipeline = VisionPipeline.from_definitions(pipeline_name, cfg.pipelines[pipeline_name])
    with create_camera(camera_cfg) as camera:
        engine = create_engine_from_config(config, camera)
        return pipeline.run(engine, overrides=overrides)


def main(argv: Optional[List[str]] = None) -> int:
    """Main application function."""
    parser = argparse.ArgumentParser(description='Machine-vision pipeline runner')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--camera', type=str, default=None,
                        help='Camera name (default: first configured camera)')
    parser.add_argument('--pipeline', type=str, default=None,
                        help='Pipeline name to run')
    parser.add_argument('--image', type=str, default=None,
                        help='Run against a still image instead of the camera device')
    parser.add_argument('--set', dest='overrides', action='append', default=[],
                        metavar='PROPERTY.PARAMETER=VALUE',
                        help='Property override for this run (repeatable)')
    parser.add_argument('--output', type=str, default=None,
                        help='Write the final working image to this path')
    parser.add_argument('--list-stages', action='store_true',
                        help='List available stage types and exit')
    args = parser.parse_args(argv)

    if args.list_stages:
        for entry in STAGE_REGISTRY.list_stages():
            print(f"{entry['type']:<20} {entry['category']:<18} {entry['description']}")
        return 0

    config = load_config(args.config)
    is_valid, error = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration error: {error}")
        return 1

    setup_logging(config['log_path'], config['log_level'])

    if not args.pipeline:
        logging.error("No pipeline given (--pipeline)")
        return 1

    try:
        overrides = parse_overrides(args.overrides)
        result = run_pipeline(config, args.pipeline, args.camera, args.image, overrides)
    except (ValueError, CameraError, PipelineError) as e:
        logging.error(f"Pipeline run failed: {e}")
        return 1

    log_run_summary(args.pipeline, result)
    if args.output and result.image is not None:
        cv2.imwrite(args.output, result.image)
        logging.info(f"Wrote {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
