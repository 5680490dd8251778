"""
constraint_samplers/events.py - 采样器选择过程的决策轨迹

ConstraintSamplerManager 在决策过程中的每一个分支都会产生一个
SelectionEvent，交给注入的 SelectionObserver。决策逻辑本身不直接写日志；
默认的 LoggingObserver 把事件写入 logging，RecordingObserver 把事件保存
在列表中供调用方检查。
"""

import abc
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class SelectionEventKind(Enum):
    """决策事件类型"""
    EXTERNAL_ALLOCATOR = "external_allocator"
    UNKNOWN_GROUP = "unknown_group"
    SELECTION_STARTED = "selection_started"
    JOINT_CONSTRAINT_DROPPED = "joint_constraint_dropped"
    JOINT_FULL_COVERAGE = "joint_full_coverage"
    JOINT_PARTIAL_COVERAGE = "joint_partial_coverage"
    JOINT_CONFIGURE_FAILED = "joint_configure_failed"
    IK_CANDIDATE_ACCEPTED = "ik_candidate_accepted"
    IK_CANDIDATE_REJECTED = "ik_candidate_rejected"
    IK_CONFIGURE_FAILED = "ik_configure_failed"
    IK_MULTIPLE_LINKS = "ik_multiple_links"
    IK_SAMPLER_SELECTED = "ik_sampler_selected"
    JOINT_BOUNDS_ABSORBED = "joint_bounds_absorbed"
    SUBGROUP_ATTEMPT = "subgroup_attempt"
    SUBGROUP_SAMPLER = "subgroup_sampler"
    UNION_SAMPLER = "union_sampler"
    FALLBACK_JOINT_SAMPLER = "fallback_joint_sampler"
    NO_SAMPLER = "no_sampler"


@dataclass(frozen=True)
class SelectionEvent:
    """一条决策事件

    Attributes:
        kind: 事件类型
        group_name: 当前处理的关节组
        message: 可读描述
        link_name: 相关连杆（IK 相关事件）
        sampling_volume: 相关候选的采样体积
        details: 其它结构化信息
    """
    kind: SelectionEventKind
    group_name: str
    message: str = ""
    link_name: Optional[str] = None
    sampling_volume: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        text = f"[{self.group_name}] {self.kind.value}"
        if self.link_name is not None:
            text += f" link={self.link_name}"
        if self.sampling_volume is not None:
            text += f" volume={self.sampling_volume:.6g}"
        if self.message:
            text += f": {self.message}"
        return text


class SelectionObserver(abc.ABC):
    """决策事件接收者"""

    @abc.abstractmethod
    def on_event(self, event: SelectionEvent) -> None:
        ...


class LoggingObserver(SelectionObserver):
    """把决策事件写入 logging（默认 DEBUG 级别）"""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self.level = level

    def on_event(self, event: SelectionEvent) -> None:
        logger.log(self.level, "%s", event)


class RecordingObserver(SelectionObserver):
    """按顺序记录所有决策事件"""

    def __init__(self) -> None:
        self.events: List[SelectionEvent] = []

    def on_event(self, event: SelectionEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> List[SelectionEventKind]:
        return [e.kind for e in self.events]

    def of_kind(self, kind: SelectionEventKind) -> List[SelectionEvent]:
        return [e for e in self.events if e.kind == kind]

    def clear(self) -> None:
        self.events.clear()


class CompositeObserver(SelectionObserver):
    """把事件依次转发给多个观察者"""

    def __init__(self, observers: Iterable[SelectionObserver]) -> None:
        self.observers = list(observers)

    def on_event(self, event: SelectionEvent) -> None:
        for obs in self.observers:
            obs.on_event(event)
