"""
samplers/base.py - 约束采样器统一接口

ConstraintSampler ABC          ：所有采样器（关节 / IK / 组合）的共同能力
ConstraintSamplerAllocator ABC ：外部注册的采样器工厂，优先于默认决策流程

生命周期::

    sampler = SomeSampler(scene, "arm")
    if sampler.configure(constraints):
        for _ in range(n):
            if sampler.sample(state):
                ...   # state 中 covered_variables 已被写入

采样器只在一次规划尝试内使用；随机数生成器不加锁，不可跨线程共享。
"""

from __future__ import annotations

import abc
from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

import numpy as np

from ..models import Constraints, SamplerConfig
from ..robot_model import JointModelGroup, RobotState
from ..transforms import PlanningScene


class ConstraintSampler(abc.ABC):
    """约束采样器基类

    Args:
        scene: 规划场景（configure 时读取，之后不再访问）
        group_name: 关节组名
        config: 采样参数（默认 SamplerConfig()）
        rng: 随机数生成器（默认按 config.random_seed 新建）

    Raises:
        ValueError: 场景的机器人模型中没有该关节组
    """

    def __init__(
        self,
        scene: PlanningScene,
        group_name: str,
        config: Optional[SamplerConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.scene = scene
        self.group_name = group_name
        self.config = config or SamplerConfig()
        jmg = scene.get_robot_model().get_joint_model_group(group_name)
        if jmg is None:
            raise ValueError(f"机器人模型中不存在关节组 '{group_name}'")
        self.jmg: JointModelGroup = jmg
        self._rng = rng if rng is not None else self.config.make_rng()
        self._is_valid = False
        self._covered: FrozenSet[str] = frozenset()

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def rng(self) -> np.random.Generator:
        return self._rng

    @property
    def is_valid(self) -> bool:
        """是否已成功 configure"""
        return self._is_valid

    @property
    def covered_variables(self) -> FrozenSet[str]:
        """sample() 会写入的关节变量集合"""
        return self._covered

    def get_joint_model_group(self) -> JointModelGroup:
        return self.jmg

    @abc.abstractmethod
    def can_service(self, constraints: Constraints) -> bool:
        """约束集中是否存在本采样器能处理的约束"""

    @abc.abstractmethod
    def configure(self, constraints: Constraints) -> bool:
        """从完整约束集配置采样器，失败返回 False"""

    def sample(self, state: RobotState, max_attempts: Optional[int] = None) -> bool:
        """采样一个满足约束的状态，写入 state

        Args:
            state: 被读写的机器人状态
            max_attempts: 最大尝试次数（默认 config.max_sampling_attempts）

        Returns:
            是否成功；失败时 state 可能已被部分修改

        Raises:
            RuntimeError: 采样器未成功 configure
        """
        if not self._is_valid:
            raise RuntimeError(f"{self.name} (group '{self.group_name}') 尚未成功配置")
        if max_attempts is None:
            max_attempts = self.config.max_sampling_attempts
        return self._sample(state, max(1, int(max_attempts)))

    @abc.abstractmethod
    def _sample(self, state: RobotState, max_attempts: int) -> bool:
        ...

    def absorb_joint_bounds(self, bounds: Dict[str, Tuple[float, float]]) -> Set[str]:
        """接管落在本采样器覆盖变量上的关节区间

        组合采样器时，关节约束若落在任务空间采样器写入的变量上，
        由该采样器以筛选条件的方式执行，避免两个成员写同一变量。

        Args:
            bounds: {变量名: (lo, hi)}

        Returns:
            已接管的变量名集合（默认不接管任何变量）
        """
        return set()

    def _set_covered(self, names: Iterable[str]) -> None:
        self._covered = frozenset(names)

    def __repr__(self) -> str:
        return (f"{self.name}(group={self.group_name!r}, valid={self._is_valid}, "
                f"covered={sorted(self._covered)})")


class ConstraintSamplerAllocator(abc.ABC):
    """外部采样器工厂

    注册到 ConstraintSamplerManager 后，按注册顺序优先于默认决策流程。
    """

    @abc.abstractmethod
    def can_service(
        self,
        scene: PlanningScene,
        group_name: str,
        constraints: Constraints,
    ) -> bool:
        """是否能为该组和约束集构造采样器"""

    @abc.abstractmethod
    def alloc(
        self,
        scene: PlanningScene,
        group_name: str,
        constraints: Constraints,
    ) -> Optional[ConstraintSampler]:
        """构造并配置采样器"""
