"""Rigid transformation and epipolar geometry utilities for camera poses."""

import numpy as np
from typing import Tuple


def pose_to_matrix(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """
    Convert rotation matrix and translation vector to 4x4 transformation matrix.

    Args:
        rotation: Rotation matrix (3, 3)
        translation: Translation vector (3,) or (3, 1)

    Returns:
        4x4 homogeneous transformation matrix
    """
    T = np.eye(4)
    T[:3, :3] = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
    T[:3, 3] = np.asarray(translation, dtype=np.float64).reshape(3)
    return T


def matrix_to_pose(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Split a 4x4 transformation matrix into (R (3, 3), t (3, 1))."""
    return T[:3, :3].copy(), T[:3, 3].reshape(3, 1).copy()


def invert_transform(T: np.ndarray) -> np.ndarray:
    """
    Invert a 4x4 homogeneous transformation matrix.

    For SE(3): T^-1 = [R^T, -R^T * t; 0, 1]
    """
    T_inv = np.eye(4)
    R = T[:3, :3]
    t = T[:3, 3]

    R_T = R.T
    T_inv[:3, :3] = R_T
    T_inv[:3, 3] = -R_T @ t

    return T_inv


def relative_pose(
    rotation_a: np.ndarray,
    translation_a: np.ndarray,
    rotation_b: np.ndarray,
    translation_b: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute the pose of camera b relative to camera a.

    Both poses map reference (camera 0) coordinates into the camera frame:
        x_a = T_a @ X,  x_b = T_b @ X

    so the transformation taking camera a coordinates to camera b is
        T_ab = T_b @ inv(T_a)

    Returns:
        (R_ab, t_ab) with R_ab (3, 3) and t_ab (3, 1)
    """
    T_a = pose_to_matrix(rotation_a, translation_a)
    T_b = pose_to_matrix(rotation_b, translation_b)
    return matrix_to_pose(T_b @ invert_transform(T_a))


def skew(t: np.ndarray) -> np.ndarray:
    x, y, z = np.asarray(t, dtype=np.float64).reshape(3)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def fundamental_from_pose(
    K_a: np.ndarray,
    K_b: np.ndarray,
    rotation: np.ndarray,
    translation: np.ndarray,
) -> np.ndarray:
    """
    Fundamental matrix F with x_b^T F x_a = 0 for the pose (R, t) of b relative to a.

    F = K_b^-T [t]x R K_a^-1
    """
    E = skew(translation) @ np.asarray(rotation, dtype=np.float64)
    F = np.linalg.inv(K_b).T @ E @ np.linalg.inv(K_a)
    norm = np.abs(F).max()
    return F / norm if norm > 0 else F


def projection_matrix(
    camera_matrix: np.ndarray, rotation: np.ndarray, translation: np.ndarray
) -> np.ndarray:
    """P = K [R | t], a (3, 4) matrix."""
    Rt = np.hstack(
        [
            np.asarray(rotation, dtype=np.float64).reshape(3, 3),
            np.asarray(translation, dtype=np.float64).reshape(3, 1),
        ]
    )
    return np.asarray(camera_matrix, dtype=np.float64) @ Rt
