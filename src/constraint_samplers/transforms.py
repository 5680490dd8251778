"""
constraint_samplers/transforms.py - 场景坐标变换快照与规划场景

Transforms 保存一组固定坐标系相对规划坐标系 (planning frame) 的
4x4 齐次变换。采样器在 configure 时一次性把约束从声明坐标系换算到
规划坐标系，之后不再查询场景；场景在采样器生命周期内视为不可变。
"""

from typing import Dict, List, Optional, Union

import numpy as np

from .models import Pose
from .robot_model import RobotModel, RobotState


class Transforms:
    """固定坐标系变换快照

    Args:
        planning_frame: 规划坐标系名称（所有采样结果均在该坐标系下表达）

    Example:
        >>> tf = Transforms("world")
        >>> tf.set_transform("table", Pose(position=[1.0, 0.0, 0.7]))
        >>> T = tf.get_transform("table")
    """

    def __init__(self, planning_frame: str) -> None:
        self.planning_frame = planning_frame
        self._frames: Dict[str, np.ndarray] = {}

    @property
    def frame_names(self) -> List[str]:
        return [self.planning_frame] + list(self._frames.keys())

    def set_transform(self, frame_id: str, transform: Union[Pose, np.ndarray]) -> None:
        """设置坐标系 frame_id 在规划坐标系下的位姿

        Args:
            frame_id: 坐标系名
            transform: Pose 或 4x4 齐次矩阵
        """
        if frame_id == self.planning_frame:
            raise ValueError(f"不能修改规划坐标系 '{frame_id}' 的变换")
        if isinstance(transform, Pose):
            T = transform.to_matrix()
        else:
            T = np.array(transform, dtype=np.float64)
            if T.shape != (4, 4):
                raise ValueError("transform 必须是 Pose 或 4x4 矩阵")
        self._frames[frame_id] = T

    def has_frame(self, frame_id: str) -> bool:
        return frame_id == self.planning_frame or frame_id in self._frames

    def get_transform(self, frame_id: str) -> np.ndarray:
        """获取 frame_id 在规划坐标系下的 4x4 变换

        Raises:
            KeyError: 未知坐标系
        """
        if frame_id == self.planning_frame:
            return np.eye(4)
        try:
            return self._frames[frame_id].copy()
        except KeyError:
            raise KeyError(f"未知坐标系 '{frame_id}'") from None

    def transform_point(self, frame_id: str, point: np.ndarray) -> np.ndarray:
        T = self.get_transform(frame_id)
        return T[:3, :3] @ np.asarray(point, dtype=np.float64) + T[:3, 3]

    def transform_pose(self, frame_id: str, pose: Pose) -> Pose:
        return Pose.from_matrix(self.get_transform(frame_id) @ pose.to_matrix())

    def copy(self) -> 'Transforms':
        tf = Transforms(self.planning_frame)
        tf._frames = {k: v.copy() for k, v in self._frames.items()}
        return tf

    def __repr__(self) -> str:
        return f"Transforms(planning_frame={self.planning_frame!r}, n_frames={len(self._frames)})"


class PlanningScene:
    """规划场景：机器人模型 + 坐标变换快照

    只读使用。采样器在 configure 时冻结所需变换，之后修改场景不会反映到
    已构造的采样器中，这些采样器应当丢弃重建。

    Args:
        robot_model: 机器人模型
        transforms: 坐标变换快照（默认仅含规划坐标系 'world'）
        name: 场景名称
    """

    def __init__(
        self,
        robot_model: RobotModel,
        transforms: Optional[Transforms] = None,
        name: str = "",
    ) -> None:
        self.robot_model = robot_model
        self.transforms = transforms or Transforms("world")
        self.name = name

    @property
    def planning_frame(self) -> str:
        return self.transforms.planning_frame

    def get_robot_model(self) -> RobotModel:
        return self.robot_model

    def get_transforms(self) -> Transforms:
        return self.transforms

    def get_current_state(self) -> RobotState:
        return RobotState(self.robot_model)

    def __repr__(self) -> str:
        return (f"PlanningScene(name={self.name!r}, robot={self.robot_model.name!r}, "
                f"planning_frame={self.planning_frame!r})")
