"""
samplers/joint_sampler.py - 关节空间约束采样器

每个被约束的关节变量取 [目标 - 下侧容差, 目标 + 上侧容差] 与原生上下限的交集，
采样时在各自区间内独立均匀采样；未被约束的变量保持 state 中的原值。
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from ..kinematic_constraints import KinematicJointConstraint, normalize_angle
from ..models import Constraints, SamplerConfig
from ..robot_model import RobotState
from ..transforms import PlanningScene
from .base import ConstraintSampler

logger = logging.getLogger(__name__)


class JointConstraintSampler(ConstraintSampler):
    """关节约束采样器

    Args:
        scene: 规划场景
        group_name: 关节组名
        config: 采样参数
        rng: 随机数生成器（manager 为每个采样器派生独立的流）

    Example:
        >>> sampler = JointConstraintSampler(scene, "arm")
        >>> jc = KinematicJointConstraint(model)
        >>> jc.configure(JointConstraint("j1", 0.5, 0.1, 0.1))
        >>> sampler.configure_joint_constraints([jc])
        True
        >>> sampler.sample(state)
        True
    """

    def __init__(
        self,
        scene: PlanningScene,
        group_name: str,
        config: Optional[SamplerConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        super().__init__(scene, group_name, config, rng)
        self._bounds: Dict[str, Tuple[float, float]] = {}
        self._indices = np.zeros(0, dtype=np.intp)
        self._lo = np.zeros(0)
        self._hi = np.zeros(0)
        self._continuous = np.zeros(0, dtype=bool)

    @property
    def bounds(self) -> Dict[str, Tuple[float, float]]:
        """各被约束变量的采样区间 {变量名: (lo, hi)}"""
        return dict(self._bounds)

    @property
    def constrained_variable_count(self) -> int:
        return len(self._bounds)

    @property
    def unconstrained_variable_count(self) -> int:
        return self.jmg.variable_count - len(self._bounds)

    def can_service(self, constraints: Constraints) -> bool:
        return any(self.jmg.has_variable(jc.joint_name)
                   for jc in constraints.joint_constraints)

    def configure(self, constraints: Constraints) -> bool:
        """从约束集中挑出属于本组的关节约束并配置"""
        model = self.scene.get_robot_model()
        jcs: List[KinematicJointConstraint] = []
        for msg in constraints.joint_constraints:
            if not self.jmg.has_variable(msg.joint_name):
                continue
            kc = KinematicJointConstraint(model)
            if kc.configure(msg):
                jcs.append(kc)
        return self.configure_joint_constraints(jcs)

    def configure_joint_constraints(self, jcs: List[KinematicJointConstraint]) -> bool:
        """用已解析的关节约束配置采样器

        同一变量上的多个约束相互求交；非连续关节再与原生上下限求交。

        Returns:
            列表为空、变量不属于本组或任一交集为空时返回 False
        """
        self._is_valid = False
        self._bounds = {}
        self._set_covered(())

        if not jcs:
            logger.debug("关节组 '%s': 没有可用的关节约束", self.group_name)
            return False

        bounds: Dict[str, Tuple[float, float]] = {}
        for jc in jcs:
            name = jc.joint_variable_name
            if not jc.enabled or not self.jmg.has_variable(name):
                logger.warning("关节组 '%s' 中不存在关节变量 '%s'",
                               self.group_name, name)
                return False
            vb = self.jmg.get_variable_bounds(name)
            lo, hi = jc.lower, jc.upper
            if not vb.continuous:
                lo = max(lo, vb.min_position)
                hi = min(hi, vb.max_position)
            if name in bounds:
                lo = max(lo, bounds[name][0])
                hi = min(hi, bounds[name][1])
            if lo > hi:
                logger.warning(
                    "关节变量 '%s' 的约束区间与上下限无交集: [%.6f, %.6f]",
                    name, lo, hi)
                return False
            bounds[name] = (lo, hi)

        self._set_bounds(bounds)
        self._set_covered(bounds.keys())
        self._is_valid = True
        logger.debug("关节组 '%s': 关节采样器约束 %d/%d 个变量",
                     self.group_name, len(bounds), self.jmg.variable_count)
        return True

    def absorb_joint_bounds(self, bounds: Dict[str, Tuple[float, float]]) -> Set[str]:
        """在已约束的变量上进一步求交

        未被本采样器约束的变量不接管；交集为空的区间不接管并保留原区间。
        """
        absorbed: Set[str] = set()
        merged = dict(self._bounds)
        for name, (lo, hi) in bounds.items():
            if name not in merged:
                continue
            new_lo = max(lo, merged[name][0])
            new_hi = min(hi, merged[name][1])
            if new_lo > new_hi:
                logger.warning(
                    "关节变量 '%s' 的附加区间 [%.6f, %.6f] 与当前区间无交集，忽略",
                    name, lo, hi)
                continue
            merged[name] = (new_lo, new_hi)
            absorbed.add(name)
        if absorbed:
            self._set_bounds(merged)
        return absorbed

    def _set_bounds(self, bounds: Dict[str, Tuple[float, float]]) -> None:
        names = list(bounds.keys())
        model = self.scene.get_robot_model()
        self._bounds = bounds
        self._indices = np.array([model.get_variable_index(n) for n in names],
                                 dtype=np.intp)
        self._lo = np.array([bounds[n][0] for n in names])
        self._hi = np.array([bounds[n][1] for n in names])
        self._continuous = np.array(
            [self.jmg.get_variable_bounds(n).continuous for n in names], dtype=bool)

    def _sample(self, state: RobotState, max_attempts: int) -> bool:
        values = self._rng.uniform(self._lo, self._hi)
        if self._continuous.any():
            for i in np.flatnonzero(self._continuous):
                values[i] = normalize_angle(values[i])
        state.set_indexed_positions(self._indices, values)
        return True
