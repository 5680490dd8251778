"""test/test_transforms.py - 坐标变换快照与规划场景测试"""
import numpy as np
import pytest
from numpy.testing import assert_allclose

from constraint_samplers.models import Pose
from constraint_samplers.transforms import PlanningScene, Transforms


class TestTransforms:

    def test_planning_frame_identity(self):
        tf = Transforms("world")
        assert_allclose(tf.get_transform("world"), np.eye(4))
        assert tf.has_frame("world")
        assert tf.frame_names == ["world"]

    def test_unknown_frame(self):
        tf = Transforms("world")
        assert not tf.has_frame("shelf")
        with pytest.raises(KeyError):
            tf.get_transform("shelf")

    def test_cannot_override_planning_frame(self):
        with pytest.raises(ValueError):
            Transforms("world").set_transform("world", np.eye(4))

    def test_bad_matrix(self):
        with pytest.raises(ValueError):
            Transforms("world").set_transform("shelf", np.eye(3))

    def test_transform_point(self, table_transforms):
        """table 绕 z 转 90°：table 的 x 轴指向 world 的 y 轴"""
        p = table_transforms.transform_point("table", [1.0, 0.0, 0.0])
        assert_allclose(p, [0.5, 1.0, 0.2], atol=1e-12)

    def test_transform_pose(self, table_transforms):
        pose = table_transforms.transform_pose("table", Pose(position=[0.0, 1.0, 0.0]))
        assert_allclose(pose.position, [-0.5, 0.0, 0.2], atol=1e-12)

    def test_get_transform_returns_copy(self, table_transforms):
        T = table_transforms.get_transform("table")
        T[0, 3] = 100.0
        assert table_transforms.get_transform("table")[0, 3] == pytest.approx(0.5)

    def test_copy_independent(self, table_transforms):
        other = table_transforms.copy()
        other.set_transform("shelf", Pose(position=[0, 0, 1]))
        assert not table_transforms.has_frame("shelf")
        assert other.has_frame("table")


class TestPlanningScene:

    def test_default_transforms(self, six_dof_model):
        scene = PlanningScene(six_dof_model)
        assert scene.planning_frame == "world"
        assert scene.get_robot_model() is six_dof_model

    def test_current_state_is_fresh(self, six_dof_scene):
        a = six_dof_scene.get_current_state()
        b = six_dof_scene.get_current_state()
        a.set_variable_position("j1", 1.0)
        assert b.get_variable_position("j1") == 0.0
