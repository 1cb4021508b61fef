"""Tests for pose and epipolar geometry helpers."""

import numpy as np
import pytest

from marker_tracking.transforms import (
    fundamental_from_pose,
    invert_transform,
    matrix_to_pose,
    pose_to_matrix,
    projection_matrix,
    relative_pose,
)


def _rot_z(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def test_pose_to_matrix_and_back():
    R = _rot_z(0.3)
    t = np.array([[1.0], [2.0], [3.0]])
    T = pose_to_matrix(R, t)

    assert T.shape == (4, 4)
    assert np.allclose(T[3], [0.0, 0.0, 0.0, 1.0])
    R_out, t_out = matrix_to_pose(T)
    assert np.allclose(R_out, R)
    assert t_out.shape == (3, 1)
    assert np.allclose(t_out, t)


def test_invert_transform():
    """T @ inv(T) is the identity."""
    T = pose_to_matrix(_rot_z(np.pi / 3), [0.5, -1.0, 2.0])
    assert np.allclose(T @ invert_transform(T), np.eye(4), atol=1e-12)


def test_relative_pose_same_pose_is_identity():
    R = _rot_z(0.7)
    t = [0.1, 0.2, 0.3]
    R_rel, t_rel = relative_pose(R, t, R, t)
    assert np.allclose(R_rel, np.eye(3))
    assert np.allclose(t_rel, 0.0)


def test_relative_pose_translation_only():
    # Camera b sits 0.5 to the right of camera a
    R_rel, t_rel = relative_pose(np.eye(3), np.zeros(3), np.eye(3), [-0.5, 0.0, 0.0])
    assert np.allclose(R_rel, np.eye(3))
    assert t_rel.ravel() == pytest.approx([-0.5, 0.0, 0.0])


def test_relative_pose_maps_points_between_cameras():
    """x_b = R_ab x_a + t_ab for any reference point."""
    R_a, t_a = _rot_z(0.2), np.array([0.1, 0.0, 0.5])
    R_b, t_b = _rot_z(-0.4), np.array([-0.3, 0.2, 0.1])
    X = np.array([0.4, -0.2, 3.0])

    x_a = R_a @ X + t_a
    x_b = R_b @ X + t_b
    R_ab, t_ab = relative_pose(R_a, t_a, R_b, t_b)

    assert np.allclose(R_ab @ x_a + t_ab.ravel(), x_b)


def test_projection_matrix_projects_points():
    K = np.array([[100.0, 0.0, 50.0], [0.0, 100.0, 40.0], [0.0, 0.0, 1.0]])
    P = projection_matrix(K, np.eye(3), [0.0, 0.0, 0.0])
    assert P.shape == (3, 4)

    x = P @ np.array([0.2, 0.1, 2.0, 1.0])
    assert x[:2] / x[2] == pytest.approx([60.0, 45.0])


def test_fundamental_from_pose_satisfies_epipolar_constraint():
    K = np.array([[120.0, 0.0, 64.0], [0.0, 120.0, 48.0], [0.0, 0.0, 1.0]])
    R, t = _rot_z(0.1), np.array([-0.4, 0.05, 0.02])
    F = fundamental_from_pose(K, K, R, t)
    P_a = projection_matrix(K, np.eye(3), np.zeros(3))
    P_b = projection_matrix(K, R, t)

    assert np.abs(F).max() == pytest.approx(1.0)
    for X in ([0.3, -0.1, 2.0, 1.0], [-0.5, 0.4, 4.0, 1.0]):
        x_a = P_a @ np.array(X)
        x_b = P_b @ np.array(X)
        assert x_b @ F @ x_a == pytest.approx(0.0, abs=1e-9)
