from __future__ import annotations

import enum
import logging
import math
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, TypeVar

import numpy as np

from crfcalib.core.curves import CHANNELS, CurveFunction, RgbCurve
from crfcalib.core.quantize import as_rgb, quantize
from crfcalib.core.sampling import GridSampleSelector, SampleSelector
from crfcalib.errors import CalibrationStateError, DimensionMismatchError, InvalidConfigurationError
from crfcalib.hdr.convergence import ConvergenceMonitor, Verdict
from crfcalib.hdr.radiance import estimate_radiance
from crfcalib.hdr.response import accumulate_group, combine, normalize_response

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CalibrationState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    ITERATING = "iterating"
    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"


@dataclass(frozen=True)
class IterationState:
    response: RgbCurve
    iterations: int
    last_delta: float
    history: tuple[float, ...]


@dataclass(frozen=True)
class _Inputs:
    groups: list[list[np.ndarray]]
    times: list[list[float]]
    quantization: int
    weight: RgbCurve
    points: list[np.ndarray]


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise InvalidConfigurationError(msg)


def _is_int(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


class RobertsonCalibrate:
    """
    Camera response function calibration from bracketed LDR image groups.

    Alternates between the per-pixel radiance estimate of every group and the
    per-bin response estimate over sampled pixels (Robertson, Borman and
    Stevenson, "Estimation-theoretic approach to dynamic range enhancement
    using multiple exposures", 2003). The response is normalized to 1 at the
    middle bin after every update.

    One instance runs one calibration at a time; calling `process` again
    replaces the previous results.
    """

    def __init__(
        self,
        max_iteration: int = 500,
        threshold: float = 0.01,
        *,
        sample_selector: SampleSelector | None = None,
        workers: int = 1,
    ) -> None:
        self._max_iteration = max_iteration
        self._threshold = threshold
        self.sample_selector: SampleSelector = sample_selector if sample_selector is not None else GridSampleSelector()
        self.workers = workers
        self._radiance: list[np.ndarray] = []
        self._state = CalibrationState.UNINITIALIZED
        self._iteration_state: IterationState | None = None

    @property
    def max_iteration(self) -> int:
        return self._max_iteration

    @max_iteration.setter
    def max_iteration(self, value: int) -> None:
        self._max_iteration = value

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        self._threshold = value

    def get_max_iteration(self) -> int:
        return self._max_iteration

    def set_max_iteration(self, value: int) -> None:
        self._max_iteration = value

    def get_threshold(self) -> float:
        return self._threshold

    def set_threshold(self, value: float) -> None:
        self._threshold = value

    @property
    def state(self) -> CalibrationState:
        return self._state

    @property
    def iteration_state(self) -> IterationState | None:
        return self._iteration_state

    @property
    def group_count(self) -> int:
        return len(self._radiance)

    def get_radiance(self, group: int) -> np.ndarray:
        """Read-only (H,W,3) radiance map of `group` from the last run."""
        if self._state in (CalibrationState.UNINITIALIZED, CalibrationState.ITERATING):
            raise CalibrationStateError("no completed calibration run")
        if not 0 <= int(group) < len(self._radiance):
            raise IndexError(f"group index {group} out of range [0, {len(self._radiance)})")
        view = self._radiance[int(group)].view()
        view.flags.writeable = False
        return view

    def process(
        self,
        ldr_image_groups: Sequence[Sequence[np.ndarray]],
        channel_quantization: int,
        times: Sequence[Sequence[float]],
        nb_points: int,
        fisheye: bool,
        weight: RgbCurve | CurveFunction,
    ) -> RgbCurve:
        """
        Estimate the response curve shared by all groups.

        Inputs are validated before any state changes: a failing call leaves
        the results of a previous run untouched.
        """
        max_iteration = self._max_iteration
        threshold = self._threshold
        workers = self.workers
        _require(_is_int(max_iteration) and max_iteration > 0, "max_iteration must be an integer > 0")
        _require(math.isfinite(float(threshold)) and float(threshold) > 0.0, "threshold must be finite and > 0")
        _require(int(workers) >= 1, "workers must be >= 1")
        inputs = self._prepare(ldr_image_groups, channel_quantization, times, nb_points, fisheye, weight)

        q = inputs.quantization
        logger.info(
            "robertson: %d group(s), Q=%d, %d sample point(s), max_iteration=%d, threshold=%g",
            len(inputs.groups),
            q,
            sum(int(p.shape[0]) for p in inputs.points),
            max_iteration,
            threshold,
        )

        quantized = [[quantize(img, q) for img in group] for group in inputs.groups]
        self._radiance = [np.zeros((g[0].shape[0], g[0].shape[1], CHANNELS), dtype=np.float32) for g in inputs.groups]
        self._iteration_state = None
        self._state = CalibrationState.ITERATING

        response = RgbCurve.flat(q, 1.0)
        monitor = ConvergenceMonitor(threshold=float(threshold), max_iteration=int(max_iteration))

        executor = ThreadPoolExecutor(max_workers=int(workers)) if int(workers) > 1 else None
        try:
            while True:
                self._radiance_pass(executor, quantized, inputs.times, response, inputs.weight, int(workers))
                partials = _map(
                    executor,
                    lambda g: accumulate_group(quantized[g], inputs.times[g], self._radiance[g], inputs.points[g], q),
                    range(len(quantized)),
                )
                updated = normalize_response(combine(partials, q).solve(response))
                verdict = monitor.update(response, updated)
                response = updated
                logger.debug("robertson: iteration %d delta=%.6g", monitor.iterations, monitor.last_delta)
                if verdict is not Verdict.CONTINUE:
                    break
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        if verdict is Verdict.CONVERGED:
            self._state = CalibrationState.CONVERGED
        else:
            self._state = CalibrationState.ITERATION_LIMIT_REACHED
        self._iteration_state = IterationState(
            response=response,
            iterations=monitor.iterations,
            last_delta=monitor.last_delta,
            history=tuple(monitor.history),
        )
        logger.info(
            "robertson: %s after %d iteration(s), delta=%.6g",
            self._state.value,
            monitor.iterations,
            monitor.last_delta,
        )
        return response.copy()

    def _radiance_pass(
        self,
        executor: ThreadPoolExecutor | None,
        quantized: list[list[np.ndarray]],
        times: list[list[float]],
        response: RgbCurve,
        weight: RgbCurve,
        workers: int,
    ) -> None:
        # Disjoint row bands: every task writes its own slice of one radiance map.
        tasks: list[tuple[int, slice]] = []
        for g, group in enumerate(quantized):
            h = group[0].shape[0]
            bands = max(1, min(workers, h))
            edges = np.linspace(0, h, bands + 1).astype(int)
            tasks.extend((g, slice(int(a), int(b))) for a, b in zip(edges[:-1], edges[1:]) if b > a)

        def run(task: tuple[int, slice]) -> None:
            g, rows = task
            estimate_radiance(quantized[g], times[g], response, weight, out=self._radiance[g], rows=rows)

        _map(executor, run, tasks)

    def _prepare(
        self,
        ldr_image_groups: Sequence[Sequence[np.ndarray]],
        channel_quantization: int,
        times: Sequence[Sequence[float]],
        nb_points: int,
        fisheye: bool,
        weight: RgbCurve | CurveFunction,
    ) -> _Inputs:
        _require(
            _is_int(channel_quantization) and channel_quantization > 0,
            "channel_quantization must be an integer > 0",
        )
        q = int(channel_quantization)
        _require(_is_int(nb_points) and nb_points > 0, "nb_points must be an integer > 0")
        _require(len(ldr_image_groups) > 0, "at least one image group is required")
        _require(len(times) == len(ldr_image_groups), "one exposure series per image group is required")

        groups: list[list[np.ndarray]] = []
        for g, group in enumerate(ldr_image_groups):
            _require(len(group) > 0, f"group {g} is empty")
            imgs: list[np.ndarray] = []
            for i, img in enumerate(group):
                try:
                    imgs.append(as_rgb(np.asarray(img)))
                except ValueError as e:
                    raise InvalidConfigurationError(f"group {g} image {i}: {e}") from e
            shape0 = imgs[0].shape[:2]
            _require(shape0[0] > 0 and shape0[1] > 0, f"group {g} images are empty")
            for i, img in enumerate(imgs[1:], start=1):
                if img.shape[:2] != shape0:
                    raise DimensionMismatchError(
                        f"group {g} image {i} is {img.shape[1]}x{img.shape[0]}, expected {shape0[1]}x{shape0[0]}"
                    )
            groups.append(imgs)

        series: list[list[float]] = []
        for g, (group, ts) in enumerate(zip(groups, times, strict=True)):
            ts = [float(t) for t in ts]
            _require(len(ts) == len(group), f"group {g}: {len(ts)} exposure time(s) for {len(group)} image(s)")
            _require(all(math.isfinite(t) and t > 0.0 for t in ts), f"group {g}: exposure times must be finite and > 0")
            series.append(ts)

        if isinstance(weight, RgbCurve):
            weight_curve = weight
        elif callable(weight):
            weight_curve = RgbCurve.from_function(q, weight)
        else:
            raise InvalidConfigurationError("weight must be an RgbCurve or a callable (bin, channel) -> float")
        _require(weight_curve.size == q, f"weight curve has {weight_curve.size} bins, expected {q}")
        _require(bool(np.all(np.isfinite(weight_curve.table))), "weight curve must be finite")
        _require(bool(np.all(weight_curve.table >= 0.0)), "weight curve must be non-negative")

        points: list[np.ndarray] = []
        for g, group in enumerate(groups):
            pts = np.asarray(self.sample_selector(group, int(nb_points), bool(fisheye)), dtype=np.int64).reshape(-1, 2)
            h, w = group[0].shape[:2]
            _require(pts.shape[0] > 0, f"group {g}: sample selector returned no points")
            inside = (pts[:, 0] >= 0) & (pts[:, 0] < h) & (pts[:, 1] >= 0) & (pts[:, 1] < w)
            _require(bool(np.all(inside)), f"group {g}: sample selector returned out-of-bounds points")
            points.append(pts)

        return _Inputs(groups=groups, times=series, quantization=q, weight=weight_curve, points=points)


def _map(executor: ThreadPoolExecutor | None, fn: Callable[[T], R], items: Iterable[T]) -> list[R]:
    if executor is None:
        return [fn(item) for item in items]
    return list(executor.map(fn, items))


def calibrate(
    ldr_image_groups: Sequence[Sequence[np.ndarray]],
    times: Sequence[Sequence[float]],
    weight: RgbCurve | CurveFunction,
    *,
    channel_quantization: int = 256,
    nb_points: int = 1000,
    fisheye: bool = False,
    **kwargs: Any,
) -> tuple[RgbCurve, list[np.ndarray]]:
    """One-shot helper: returns the response and every group's radiance map."""
    cal = RobertsonCalibrate(**kwargs)
    response = cal.process(ldr_image_groups, channel_quantization, times, nb_points, fisheye, weight)
    return response, [cal.get_radiance(g) for g in range(cal.group_count)]
