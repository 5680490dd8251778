"""
constraint_samplers/robot_model.py - 机器人关节模型

约束采样只需要机器人模型的一小部分：
- 关节变量（名称 + 原生上下限）
- 连杆名称集合
- 关节组 (JointModelGroup)：有序关节变量子集、所含连杆、
  可选的整组 IK 求解函数、以及拥有各自 IK 求解函数的子组
- RobotState：所有关节变量的当前值，采样时被读写

运动学本身（FK / IK 求解）不在本模块内，IK 通过 IKSolverFn 注入。
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .models import Pose

logger = logging.getLogger(__name__)

# (link_name, 规划坐标系下的目标位姿, 种子关节值) -> 组内关节值 或 None（求解失败）
IKSolverFn = Callable[[str, Pose, np.ndarray], Optional[np.ndarray]]

# (link_name, 机器人状态) -> 连杆在规划坐标系下的位姿
LinkPoseFn = Callable[[str, 'RobotState'], Pose]


@dataclass
class VariableBounds:
    """单个关节变量的原生上下限

    Attributes:
        min_position: 下限
        max_position: 上限
        continuous: 是否为无限位连续关节（采样时上下限不截断约束区间）
    """
    min_position: float
    max_position: float
    continuous: bool = False

    def __post_init__(self) -> None:
        self.min_position = float(self.min_position)
        self.max_position = float(self.max_position)
        if self.min_position > self.max_position:
            raise ValueError(
                f"关节下限 {self.min_position} 大于上限 {self.max_position}")

    @property
    def width(self) -> float:
        return self.max_position - self.min_position

    def contains(self, value: float, tol: float = 1e-10) -> bool:
        if self.continuous:
            return True
        return self.min_position - tol <= value <= self.max_position + tol

    def default_position(self) -> float:
        """默认值：0 在范围内取 0，否则取区间中点"""
        if self.continuous or self.min_position <= 0.0 <= self.max_position:
            return 0.0
        return (self.min_position + self.max_position) / 2.0


class JointModelGroup:
    """关节组

    由 RobotModel.add_group 创建，不直接实例化。

    Attributes:
        name: 组名
        variable_names: 有序关节变量名
        variable_indices: 各变量在 RobotState 中的下标
        link_names: 组内连杆名集合
        solver: 整组 IK 求解函数（可为 None）
        subgroup_names: 子组名（有序，决定子组分配的优先级）
    """

    def __init__(
        self,
        name: str,
        variable_names: Sequence[str],
        variable_bounds: Dict[str, VariableBounds],
        variable_indices: Sequence[int],
        link_names: Iterable[str],
        solver: Optional[IKSolverFn] = None,
        subgroup_names: Optional[Sequence[str]] = None,
    ) -> None:
        self.name = name
        self.variable_names: List[str] = list(variable_names)
        self.variable_indices = np.asarray(variable_indices, dtype=np.intp)
        self._bounds = dict(variable_bounds)
        self._variable_set = frozenset(self.variable_names)
        self.link_names = frozenset(link_names)
        self.solver = solver
        self.subgroup_names: List[str] = list(subgroup_names or [])

    @property
    def variable_count(self) -> int:
        return len(self.variable_names)

    @property
    def variable_set(self) -> frozenset:
        return self._variable_set

    def has_variable(self, name: str) -> bool:
        return name in self._variable_set

    def has_link_model(self, link_name: str) -> bool:
        return link_name in self.link_names

    def get_variable_bounds(self, name: str) -> VariableBounds:
        return self._bounds[name]

    def __repr__(self) -> str:
        return (f"JointModelGroup(name={self.name!r}, "
                f"n_variables={self.variable_count}, "
                f"has_solver={self.solver is not None})")


class RobotModel:
    """机器人关节模型

    Args:
        name: 机器人名称
        variable_bounds: 有序字典 {变量名: VariableBounds}，顺序即 RobotState 中的顺序
        link_names: 所有连杆名
        link_pose_fn: 正运动学钩子（可选）。只有姿态约束时，
            IK 目标位置取种子状态下连杆的当前位置，需要该钩子

    Example:
        >>> model = RobotModel("arm", {"j1": VariableBounds(-1, 1)}, ["base", "tool"])
        >>> group = model.add_group("arm", ["j1"], ["tool"], solver=my_ik)
    """

    def __init__(
        self,
        name: str,
        variable_bounds: Dict[str, VariableBounds],
        link_names: Iterable[str],
        link_pose_fn: Optional[LinkPoseFn] = None,
    ) -> None:
        self.name = name
        self.link_pose_fn = link_pose_fn
        self._bounds: Dict[str, VariableBounds] = dict(variable_bounds)
        self.variable_names: List[str] = list(self._bounds.keys())
        self._index = {n: i for i, n in enumerate(self.variable_names)}
        self.link_names = frozenset(link_names)
        self._groups: Dict[str, JointModelGroup] = {}

    @property
    def variable_count(self) -> int:
        return len(self.variable_names)

    def has_variable(self, name: str) -> bool:
        return name in self._index

    def has_link(self, link_name: str) -> bool:
        return link_name in self.link_names

    def get_variable_index(self, name: str) -> int:
        return self._index[name]

    def get_variable_bounds(self, name: str) -> VariableBounds:
        return self._bounds[name]

    def get_default_positions(self) -> np.ndarray:
        return np.array([self._bounds[n].default_position()
                         for n in self.variable_names], dtype=np.float64)

    # ── 关节组 ──

    def add_group(
        self,
        name: str,
        variable_names: Sequence[str],
        link_names: Iterable[str],
        solver: Optional[IKSolverFn] = None,
        subgroup_names: Optional[Sequence[str]] = None,
    ) -> JointModelGroup:
        """添加关节组

        Args:
            name: 组名
            variable_names: 组内关节变量（有序）
            link_names: 组内连杆
            solver: 整组 IK 求解函数
            subgroup_names: 子组名（子组需另行 add_group）

        Returns:
            新建的 JointModelGroup

        Raises:
            ValueError: 组名重复、把自己列为子组，或引用了模型中不存在的变量 / 连杆
        """
        if name in self._groups:
            raise ValueError(f"关节组 '{name}' 已存在")
        unknown_vars = [v for v in variable_names if v not in self._index]
        if unknown_vars:
            raise ValueError(f"关节组 '{name}' 引用了未知关节变量: {unknown_vars}")
        link_names = list(link_names)
        unknown_links = [ln for ln in link_names if ln not in self.link_names]
        if unknown_links:
            raise ValueError(f"关节组 '{name}' 引用了未知连杆: {unknown_links}")
        if subgroup_names and name in subgroup_names:
            raise ValueError(f"关节组 '{name}' 不能把自己列为子组")

        group = JointModelGroup(
            name=name,
            variable_names=variable_names,
            variable_bounds={v: self._bounds[v] for v in variable_names},
            variable_indices=[self._index[v] for v in variable_names],
            link_names=link_names,
            solver=solver,
            subgroup_names=subgroup_names,
        )
        self._groups[name] = group
        logger.debug("添加关节组 '%s': %d 个变量, %d 个连杆, solver=%s",
                     name, group.variable_count, len(group.link_names),
                     solver is not None)
        return group

    def has_joint_model_group(self, name: str) -> bool:
        return name in self._groups

    def get_joint_model_group(self, name: str) -> Optional[JointModelGroup]:
        """按名称查找关节组，不存在返回 None"""
        return self._groups.get(name)

    def get_joint_model_group_names(self) -> List[str]:
        return list(self._groups.keys())

    def set_group_solver(self, group_name: str, solver: Optional[IKSolverFn]) -> None:
        """为关节组挂接（或移除）IK 求解函数"""
        group = self._groups.get(group_name)
        if group is None:
            raise ValueError(f"未知关节组 '{group_name}'")
        group.solver = solver

    def get_subgroup_solvers(
        self,
        group: JointModelGroup,
    ) -> List[Tuple[JointModelGroup, IKSolverFn]]:
        """返回拥有独立 IK 求解函数的子组，按 subgroup_names 顺序"""
        result: List[Tuple[JointModelGroup, IKSolverFn]] = []
        for sub_name in group.subgroup_names:
            sub = self._groups.get(sub_name)
            if sub is None:
                logger.warning("关节组 '%s' 声明的子组 '%s' 不存在，忽略",
                               group.name, sub_name)
                continue
            if sub.solver is not None:
                result.append((sub, sub.solver))
        return result

    # ── 配置文件加载 ──

    @classmethod
    def from_json(cls, filepath: str) -> 'RobotModel':
        """从 JSON 配置文件加载（IK 求解函数需在代码中挂接）

        格式::

            {
                "name": "two_arm",
                "variables": [{"name": "j1", "min": -3.14, "max": 3.14,
                               "continuous": false}, ...],
                "links": ["base", "l1", ...],
                "groups": [{"name": "arm", "variables": ["j1", ...],
                            "links": ["l1", ...], "subgroups": []}, ...]
            }
        """
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls.from_dict(data, source=filepath)

    @classmethod
    def from_dict(cls, data: Dict, source: str = '<dict>') -> 'RobotModel':
        if not isinstance(data, dict):
            raise ValueError(f'{source}: 配置必须是 dict')
        if 'variables' not in data:
            raise ValueError(f'{source}: 缺少 "variables" 字段')

        bounds: Dict[str, VariableBounds] = {}
        for item in data['variables']:
            bounds[item['name']] = VariableBounds(
                min_position=item.get('min', -np.pi),
                max_position=item.get('max', np.pi),
                continuous=bool(item.get('continuous', False)),
            )
        model = cls(data.get('name', 'Robot'), bounds, data.get('links', []))
        for g in data.get('groups', []):
            model.add_group(
                name=g['name'],
                variable_names=g.get('variables', []),
                link_names=g.get('links', []),
                subgroup_names=g.get('subgroups'),
            )
        return model

    def __repr__(self) -> str:
        return (f"RobotModel(name={self.name!r}, n_variables={self.variable_count}, "
                f"groups={self.get_joint_model_group_names()})")


class RobotState:
    """机器人状态：所有关节变量的当前值

    采样器在 sample() 中读取当前值（作为 IK 种子）并写回采样结果。
    同一 RobotState 不应跨线程共享。

    Args:
        model: 机器人模型
        values: 初始值（默认取各变量的默认位置）
    """

    def __init__(self, model: RobotModel, values: Optional[np.ndarray] = None) -> None:
        self.model = model
        if values is None:
            self._values = model.get_default_positions()
        else:
            self._values = np.array(values, dtype=np.float64)
            if self._values.shape != (model.variable_count,):
                raise ValueError(
                    f"状态维度 {self._values.shape} 与模型变量数 "
                    f"{model.variable_count} 不匹配")

    @property
    def values(self) -> np.ndarray:
        """全部变量值（只读副本）"""
        return self._values.copy()

    def get_variable_position(self, name: str) -> float:
        return float(self._values[self.model.get_variable_index(name)])

    def set_variable_position(self, name: str, value: float) -> None:
        self._values[self.model.get_variable_index(name)] = value

    def set_variable_positions(self, positions: Dict[str, float]) -> None:
        for name, value in positions.items():
            self.set_variable_position(name, value)

    def get_group_positions(self, group: JointModelGroup) -> np.ndarray:
        return self._values[group.variable_indices]

    def set_group_positions(self, group: JointModelGroup, values: np.ndarray) -> None:
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (group.variable_count,):
            raise ValueError(
                f"关节组 '{group.name}' 需要 {group.variable_count} 个值，"
                f"得到形状 {values.shape}")
        self._values[group.variable_indices] = values

    def set_indexed_positions(self, indices: np.ndarray, values: np.ndarray) -> None:
        """按模型下标批量写入（采样热路径使用）"""
        self._values[indices] = values

    def set_to_default_values(self) -> None:
        self._values = self.model.get_default_positions()

    def set_to_random_positions(
        self,
        rng: np.random.Generator,
        group: Optional[JointModelGroup] = None,
    ) -> None:
        """在原生上下限内随机设置（连续关节取 [-pi, pi]）"""
        names = group.variable_names if group is not None else self.model.variable_names
        for name in names:
            b = self.model.get_variable_bounds(name)
            lo, hi = ((-np.pi, np.pi) if b.continuous
                      else (b.min_position, b.max_position))
            self.set_variable_position(name, rng.uniform(lo, hi))

    def copy(self) -> 'RobotState':
        return RobotState(self.model, self._values)

    def __repr__(self) -> str:
        body = ", ".join(f"{n}={v:.4f}"
                         for n, v in zip(self.model.variable_names, self._values))
        return f"RobotState({body})"
