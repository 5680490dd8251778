"""
constraint_samplers/models.py - 约束采样器数据模型

定义约束采样使用的核心数据结构：Pose、JointConstraint、
PositionConstraint、OrientationConstraint、Constraints、SamplerConfig。
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from scipy.spatial.transform import Rotation

from .regions import ConstraintRegion


@dataclass
class Pose:
    """刚体位姿

    Attributes:
        position: 位置 [x, y, z]
        orientation: 单位四元数 [x, y, z, w]
    """
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=np.float64)
        self.orientation = np.asarray(self.orientation, dtype=np.float64)
        if self.position.shape != (3,):
            raise ValueError(f"position 必须是 3 维向量, 得到 {self.position.shape}")
        if self.orientation.shape != (4,):
            raise ValueError(f"orientation 必须是 4 元数, 得到 {self.orientation.shape}")
        norm = float(np.linalg.norm(self.orientation))
        if norm < 1e-12:
            raise ValueError("orientation 四元数模长为 0")
        self.orientation = self.orientation / norm

    @classmethod
    def identity(cls) -> 'Pose':
        return cls()

    @property
    def rotation(self) -> Rotation:
        return Rotation.from_quat(self.orientation)

    def to_matrix(self) -> np.ndarray:
        """转为 4x4 齐次变换矩阵"""
        T = np.eye(4)
        T[:3, :3] = self.rotation.as_matrix()
        T[:3, 3] = self.position
        return T

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> 'Pose':
        """从 4x4 齐次变换矩阵构造"""
        T = np.asarray(T, dtype=np.float64)
        return cls(
            position=T[:3, 3].copy(),
            orientation=Rotation.from_matrix(T[:3, :3]).as_quat(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position.tolist(),
            'orientation': self.orientation.tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Pose':
        return cls(
            position=data.get('position', [0.0, 0.0, 0.0]),
            orientation=data.get('orientation', [0.0, 0.0, 0.0, 1.0]),
        )


@dataclass
class JointConstraint:
    """关节约束：关节变量落在 [position - tolerance_below, position + tolerance_above]

    Attributes:
        joint_name: 关节变量名
        position: 目标值
        tolerance_above: 上侧容差（非负）
        tolerance_below: 下侧容差（非负）
        weight: 权重（仅透传，不参与采样）
    """
    joint_name: str
    position: float
    tolerance_above: float
    tolerance_below: float
    weight: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'joint_name': self.joint_name,
            'position': self.position,
            'tolerance_above': self.tolerance_above,
            'tolerance_below': self.tolerance_below,
            'weight': self.weight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JointConstraint':
        return cls(
            joint_name=data['joint_name'],
            position=float(data['position']),
            tolerance_above=float(data['tolerance_above']),
            tolerance_below=float(data['tolerance_below']),
            weight=float(data.get('weight', 1.0)),
        )


@dataclass
class PositionConstraint:
    """位置约束：连杆上的目标点需落在约束区域内

    Attributes:
        link_name: 被约束的连杆
        frame_id: 约束区域所在坐标系
        constraint_regions: 约束区域列表（区域位姿在 frame_id 下）
        target_point_offset: 目标点在连杆坐标系下的偏移
        weight: 权重
    """
    link_name: str
    frame_id: str
    constraint_regions: List[ConstraintRegion] = field(default_factory=list)
    target_point_offset: np.ndarray = field(default_factory=lambda: np.zeros(3))
    weight: float = 1.0

    def __post_init__(self) -> None:
        self.target_point_offset = np.asarray(self.target_point_offset,
                                              dtype=np.float64)
        if self.target_point_offset.shape != (3,):
            raise ValueError("target_point_offset 必须是 3 维向量")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'link_name': self.link_name,
            'frame_id': self.frame_id,
            'constraint_regions': [r.to_dict() for r in self.constraint_regions],
            'target_point_offset': self.target_point_offset.tolist(),
            'weight': self.weight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PositionConstraint':
        return cls(
            link_name=data['link_name'],
            frame_id=data['frame_id'],
            constraint_regions=[ConstraintRegion.from_dict(r)
                                for r in data.get('constraint_regions', [])],
            target_point_offset=data.get('target_point_offset', [0.0, 0.0, 0.0]),
            weight=float(data.get('weight', 1.0)),
        )


@dataclass
class OrientationConstraint:
    """姿态约束：连杆姿态与目标姿态的 XYZ 轴向偏差不超过各自容差

    Attributes:
        link_name: 被约束的连杆
        frame_id: 目标姿态所在坐标系
        orientation: 目标姿态四元数 [x, y, z, w]
        absolute_x_axis_tolerance: 绕 X 轴容差 (rad)
        absolute_y_axis_tolerance: 绕 Y 轴容差 (rad)
        absolute_z_axis_tolerance: 绕 Z 轴容差 (rad)
        weight: 权重
    """
    link_name: str
    frame_id: str
    orientation: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))
    absolute_x_axis_tolerance: float = 0.0
    absolute_y_axis_tolerance: float = 0.0
    absolute_z_axis_tolerance: float = 0.0
    weight: float = 1.0

    def __post_init__(self) -> None:
        self.orientation = np.asarray(self.orientation, dtype=np.float64)
        if self.orientation.shape != (4,):
            raise ValueError("orientation 必须是 4 元数 [x, y, z, w]")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'link_name': self.link_name,
            'frame_id': self.frame_id,
            'orientation': self.orientation.tolist(),
            'absolute_x_axis_tolerance': self.absolute_x_axis_tolerance,
            'absolute_y_axis_tolerance': self.absolute_y_axis_tolerance,
            'absolute_z_axis_tolerance': self.absolute_z_axis_tolerance,
            'weight': self.weight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrientationConstraint':
        return cls(
            link_name=data['link_name'],
            frame_id=data['frame_id'],
            orientation=data.get('orientation', [0.0, 0.0, 0.0, 1.0]),
            absolute_x_axis_tolerance=float(data.get('absolute_x_axis_tolerance', 0.0)),
            absolute_y_axis_tolerance=float(data.get('absolute_y_axis_tolerance', 0.0)),
            absolute_z_axis_tolerance=float(data.get('absolute_z_axis_tolerance', 0.0)),
            weight=float(data.get('weight', 1.0)),
        )


@dataclass
class Constraints:
    """约束集合

    三个相互独立的有序列表，同一连杆/关节可出现多次。

    Attributes:
        name: 约束集名称（可选）
        joint_constraints: 关节约束
        position_constraints: 位置约束
        orientation_constraints: 姿态约束
    """
    name: str = ""
    joint_constraints: List[JointConstraint] = field(default_factory=list)
    position_constraints: List[PositionConstraint] = field(default_factory=list)
    orientation_constraints: List[OrientationConstraint] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.joint_constraints
                    or self.position_constraints
                    or self.orientation_constraints)

    def __str__(self) -> str:
        parts = [f"Constraints '{self.name}':"]
        for jc in self.joint_constraints:
            parts.append(f"  joint {jc.joint_name}: {jc.position:.4f} "
                         f"(-{jc.tolerance_below:.4f}, +{jc.tolerance_above:.4f})")
        for pc in self.position_constraints:
            parts.append(f"  position {pc.link_name} in '{pc.frame_id}': "
                         f"{len(pc.constraint_regions)} region(s)")
        for oc in self.orientation_constraints:
            parts.append(f"  orientation {oc.link_name} in '{oc.frame_id}': "
                         f"tol=({oc.absolute_x_axis_tolerance:.4f}, "
                         f"{oc.absolute_y_axis_tolerance:.4f}, "
                         f"{oc.absolute_z_axis_tolerance:.4f})")
        return "\n".join(parts)

    # ── JSON 序列化 ──

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'joint_constraints': [c.to_dict() for c in self.joint_constraints],
            'position_constraints': [c.to_dict() for c in self.position_constraints],
            'orientation_constraints': [c.to_dict() for c in self.orientation_constraints],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Constraints':
        return cls(
            name=data.get('name', ''),
            joint_constraints=[JointConstraint.from_dict(c)
                               for c in data.get('joint_constraints', [])],
            position_constraints=[PositionConstraint.from_dict(c)
                                  for c in data.get('position_constraints', [])],
            orientation_constraints=[OrientationConstraint.from_dict(c)
                                     for c in data.get('orientation_constraints', [])],
        )

    def to_json(self, filepath: str | Path) -> str:
        """保存到 JSON 文件

        Returns:
            保存的文件路径字符串
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        return str(filepath)

    @classmethod
    def from_json(cls, filepath: str | Path) -> 'Constraints':
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls.from_dict(data)


@dataclass
class SamplerConfig:
    """约束采样器参数配置

    Attributes:
        max_sampling_attempts: IK 采样器单次 sample() 的最大尝试轮数
        max_region_sample_attempts: 在约束区域内拒绝采样一个点的最大次数
        random_seed: 随机种子（None 表示不固定）
        joint_bound_tolerance: 判断 IK 解是否满足关节区间时的浮点容差
    """
    max_sampling_attempts: int = 2
    max_region_sample_attempts: int = 100
    random_seed: Optional[int] = None
    joint_bound_tolerance: float = 1e-9

    def make_rng(self) -> np.random.Generator:
        return np.random.default_rng(self.random_seed)

    def make_seed_sequence(self) -> np.random.SeedSequence:
        """根种子序列；用 spawn() 为多个采样器派生互相独立的随机流"""
        return np.random.SeedSequence(self.random_seed)

    # ── JSON 序列化 ──

    def to_dict(self) -> Dict[str, Any]:
        """转为字典"""
        from dataclasses import fields as dc_fields
        return {f.name: getattr(self, f.name) for f in dc_fields(self)}

    def to_json(self, filepath: str | Path) -> str:
        """保存到 JSON 文件

        Args:
            filepath: 输出路径

        Returns:
            保存的文件路径字符串
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        return str(filepath)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SamplerConfig':
        """从字典创建（忽略未知字段，缺失字段用默认值）"""
        from dataclasses import fields as dc_fields
        valid_fields = {f.name for f in dc_fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)

    @classmethod
    def from_json(cls, filepath: str | Path) -> 'SamplerConfig':
        """从 JSON 文件加载"""
        filepath = Path(filepath)
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls.from_dict(data)
