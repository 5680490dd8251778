"""
samplers/union_sampler.py - 组合采样器

把若干覆盖变量互不相交的子采样器组合为一个采样器。
configure 时按顺序接收成员，与已接收成员覆盖变量有交集的成员被排除；
sample 时按顺序调用各成员，任一成员失败即返回失败。
成员写入互不相交的变量子集，因此成功时各成员的约束在同一状态中同时成立。
"""

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from ..models import Constraints, SamplerConfig
from ..robot_model import RobotState
from ..transforms import PlanningScene
from .base import ConstraintSampler

logger = logging.getLogger(__name__)


class UnionConstraintSampler(ConstraintSampler):
    """组合采样器

    成员采样器由组合采样器独占，不应再被其它组合采样器引用。

    Args:
        scene: 规划场景
        group_name: 关节组名（通常是各成员所属组的父组）
        samplers: 已配置的成员采样器（有序）
        config: 采样参数
        rng: 随机数生成器
    """

    def __init__(
        self,
        scene: PlanningScene,
        group_name: str,
        samplers: Sequence[ConstraintSampler],
        config: Optional[SamplerConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        super().__init__(scene, group_name, config, rng)
        self._candidates: List[ConstraintSampler] = list(samplers)
        self._samplers: List[ConstraintSampler] = []
        self._excluded: List[ConstraintSampler] = []
        self.configure_samplers(self._candidates)

    @property
    def samplers(self) -> List[ConstraintSampler]:
        """被接收的成员（有序）"""
        return list(self._samplers)

    @property
    def excluded_samplers(self) -> List[ConstraintSampler]:
        """因未配置或覆盖变量冲突而被排除的成员"""
        return list(self._excluded)

    def configure_samplers(self, samplers: Sequence[ConstraintSampler]) -> bool:
        """按顺序接收成员，排除与已接收成员覆盖变量相交的成员

        Returns:
            至少接收一个成员时返回 True
        """
        self._is_valid = False
        self._samplers = []
        self._excluded = []
        covered: Set[str] = set()

        for s in samplers:
            if not s.is_valid:
                logger.warning("组合采样器 '%s': 成员 %s 未配置成功，排除",
                               self.group_name, s.name)
                self._excluded.append(s)
                continue
            overlap = covered & s.covered_variables
            if overlap:
                logger.warning("组合采样器 '%s': 成员 %s (组 '%s') 与已接收成员"
                               "共同覆盖变量 %s，排除",
                               self.group_name, s.name, s.group_name, sorted(overlap))
                self._excluded.append(s)
                continue
            self._samplers.append(s)
            covered |= s.covered_variables

        self._set_covered(covered)
        self._is_valid = bool(self._samplers)
        logger.debug("组合采样器 '%s': 接收 %d 个成员, 排除 %d 个, 覆盖 %d 个变量",
                     self.group_name, len(self._samplers), len(self._excluded),
                     len(covered))
        return self._is_valid

    def can_service(self, constraints: Constraints) -> bool:
        return any(s.can_service(constraints) for s in self._candidates)

    def configure(self, constraints: Constraints) -> bool:
        """用同一约束集重新配置全部成员，然后重新做不相交筛选"""
        for s in self._candidates:
            s.configure(constraints)
        return self.configure_samplers(self._candidates)

    def absorb_joint_bounds(self, bounds: Dict[str, Tuple[float, float]]) -> Set[str]:
        absorbed: Set[str] = set()
        for s in self._samplers:
            remaining = {k: v for k, v in bounds.items() if k not in absorbed}
            if not remaining:
                break
            absorbed |= s.absorb_joint_bounds(remaining)
        return absorbed

    def _sample(self, state: RobotState, max_attempts: int) -> bool:
        for s in self._samplers:
            if not s.sample(state, max_attempts):
                return False
        return True

    def __repr__(self) -> str:
        members = ", ".join(repr(s) for s in self._samplers)
        return f"UnionConstraintSampler(group={self.group_name!r}, members=[{members}])"
