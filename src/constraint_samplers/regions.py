"""
constraint_samplers/regions.py - 位置约束区域

位置约束的可行区域由若干基本几何体组成：
- Box: 轴对齐长方体（局部坐标系下以原点为中心）
- Sphere: 球
- Cylinder: 沿局部 Z 轴的圆柱

ConstraintRegion 把几何体放置到某个坐标系下（4x4 齐次变换），
提供体积、包含判断和区域内均匀采样。
"""

import abc
from typing import Any, Dict, Optional

import numpy as np
from scipy.spatial.transform import Rotation


class Shape(abc.ABC):
    """基本几何体（局部坐标系下以原点为中心）"""

    type_name = "shape"

    @abc.abstractmethod
    def volume(self) -> float:
        ...

    @abc.abstractmethod
    def contains(self, p: np.ndarray) -> bool:
        ...

    @abc.abstractmethod
    def bounding_half_extents(self) -> np.ndarray:
        """包围盒半边长（局部坐标系）"""

    @abc.abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        ...

    def sample_point(
        self,
        rng: np.random.Generator,
        max_attempts: int = 100,
    ) -> Optional[np.ndarray]:
        """在几何体内均匀采样一个点（包围盒内拒绝采样）

        Returns:
            局部坐标系下的点，max_attempts 次均未命中时返回 None
        """
        half = self.bounding_half_extents()
        for _ in range(max_attempts):
            p = rng.uniform(-half, half)
            if self.contains(p):
                return p
        return None


class Box(Shape):
    """长方体

    Args:
        dimensions: 三轴全长 [dx, dy, dz]
    """

    type_name = "box"

    def __init__(self, dimensions) -> None:
        self.dimensions = np.asarray(dimensions, dtype=np.float64)
        if self.dimensions.shape != (3,):
            raise ValueError("Box dimensions 必须是 3 维")
        if np.any(self.dimensions < 0):
            raise ValueError(f"Box 尺寸不能为负: {self.dimensions.tolist()}")

    def volume(self) -> float:
        return float(np.prod(self.dimensions))

    def contains(self, p: np.ndarray) -> bool:
        return bool(np.all(np.abs(p) <= self.dimensions / 2.0 + 1e-12))

    def bounding_half_extents(self) -> np.ndarray:
        return self.dimensions / 2.0

    def sample_point(self, rng, max_attempts=100):
        half = self.dimensions / 2.0
        return rng.uniform(-half, half)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type_name, 'dimensions': self.dimensions.tolist()}

    def __repr__(self) -> str:
        return f"Box(dimensions={self.dimensions.tolist()})"


class Sphere(Shape):
    """球

    Args:
        radius: 半径
    """

    type_name = "sphere"

    def __init__(self, radius: float) -> None:
        if radius < 0:
            raise ValueError(f"Sphere 半径不能为负: {radius}")
        self.radius = float(radius)

    def volume(self) -> float:
        return 4.0 / 3.0 * np.pi * self.radius ** 3

    def contains(self, p: np.ndarray) -> bool:
        return float(np.dot(p, p)) <= self.radius ** 2 + 1e-12

    def bounding_half_extents(self) -> np.ndarray:
        return np.full(3, self.radius)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type_name, 'radius': self.radius}

    def __repr__(self) -> str:
        return f"Sphere(radius={self.radius})"


class Cylinder(Shape):
    """圆柱（轴线沿局部 Z 轴）

    Args:
        radius: 半径
        height: 高度（全长）
    """

    type_name = "cylinder"

    def __init__(self, radius: float, height: float) -> None:
        if radius < 0 or height < 0:
            raise ValueError(f"Cylinder 尺寸不能为负: r={radius}, h={height}")
        self.radius = float(radius)
        self.height = float(height)

    def volume(self) -> float:
        return np.pi * self.radius ** 2 * self.height

    def contains(self, p: np.ndarray) -> bool:
        return bool(abs(p[2]) <= self.height / 2.0 + 1e-12
                and p[0] ** 2 + p[1] ** 2 <= self.radius ** 2 + 1e-12)

    def bounding_half_extents(self) -> np.ndarray:
        return np.array([self.radius, self.radius, self.height / 2.0])

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type_name, 'radius': self.radius,
                'height': self.height}

    def __repr__(self) -> str:
        return f"Cylinder(radius={self.radius}, height={self.height})"


def shape_from_dict(data: Dict[str, Any]) -> Shape:
    """按 'type' 字段构造几何体"""
    kind = data.get('type')
    if kind == Box.type_name:
        return Box(data['dimensions'])
    if kind == Sphere.type_name:
        return Sphere(data['radius'])
    if kind == Cylinder.type_name:
        return Cylinder(data['radius'], data['height'])
    raise ValueError(f"未知的区域类型: {kind!r}")


class ConstraintRegion:
    """放置在某坐标系下的约束区域

    Args:
        shape: 几何体
        transform: 几何体局部坐标系在所属坐标系下的 4x4 齐次变换

    Example:
        >>> region = ConstraintRegion.at(Box([0.2, 0.5, 1.0]), position=[0.5, 0, 0.3])
        >>> region.volume()
        0.1
    """

    def __init__(self, shape: Shape, transform: Optional[np.ndarray] = None) -> None:
        self.shape = shape
        self.transform = (np.eye(4) if transform is None
                          else np.asarray(transform, dtype=np.float64))
        if self.transform.shape != (4, 4):
            raise ValueError("transform 必须是 4x4 矩阵")
        self._inv = np.linalg.inv(self.transform)

    @classmethod
    def at(cls, shape: Shape, position=(0.0, 0.0, 0.0),
           orientation=(0.0, 0.0, 0.0, 1.0)) -> 'ConstraintRegion':
        """由位置和四元数 [x, y, z, w] 放置几何体"""
        T = np.eye(4)
        T[:3, :3] = Rotation.from_quat(orientation).as_matrix()
        T[:3, 3] = np.asarray(position, dtype=np.float64)
        return cls(shape, T)

    @property
    def center(self) -> np.ndarray:
        return self.transform[:3, 3].copy()

    def volume(self) -> float:
        return self.shape.volume()

    def transformed(self, T: np.ndarray) -> 'ConstraintRegion':
        """返回左乘变换 T 后的新区域（换到另一个坐标系下表达）"""
        return ConstraintRegion(self.shape, np.asarray(T) @ self.transform)

    def contains(self, point: np.ndarray) -> bool:
        local = self._inv[:3, :3] @ np.asarray(point, dtype=np.float64) + self._inv[:3, 3]
        return self.shape.contains(local)

    def sample_point(
        self,
        rng: np.random.Generator,
        max_attempts: int = 100,
    ) -> Optional[np.ndarray]:
        local = self.shape.sample_point(rng, max_attempts)
        if local is None:
            return None
        return self.transform[:3, :3] @ local + self.transform[:3, 3]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'shape': self.shape.to_dict(),
            'position': self.transform[:3, 3].tolist(),
            'orientation': Rotation.from_matrix(self.transform[:3, :3]).as_quat().tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConstraintRegion':
        return cls.at(
            shape_from_dict(data['shape']),
            position=data.get('position', [0.0, 0.0, 0.0]),
            orientation=data.get('orientation', [0.0, 0.0, 0.0, 1.0]),
        )

    def __repr__(self) -> str:
        return f"ConstraintRegion({self.shape!r}, center={self.center.tolist()})"
