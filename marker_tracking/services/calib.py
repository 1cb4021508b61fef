import os

import cv2, numpy as np

from ..mt_types import CalibrationData, CameraParameters


def save_calibration(path: str, data: CalibrationData) -> None:
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    fs.write("arity", data.arity)
    for cam, p in enumerate(data.cameras):
        if p is None:
            continue
        fs.write(f"camera_matrix_{cam}", np.asarray(p.camera_matrix, dtype=np.float64))
        fs.write(f"dist_coeffs_{cam}", np.asarray(p.distortion, dtype=np.float64))
        if p.has_position:
            fs.write(f"rotation_{cam}", np.asarray(p.rotation, dtype=np.float64))
            fs.write(f"translation_{cam}", np.asarray(p.translation, dtype=np.float64))
    fs.release()


def load_calibration(path: str) -> CalibrationData:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Calibration not found: {path}")
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    if not fs.isOpened():
        raise FileNotFoundError(f"Calibration not found: {path}")
    try:
        arity = int(fs.getNode("arity").real())
        data = CalibrationData(arity)
        for cam in range(arity):
            K = fs.getNode(f"camera_matrix_{cam}")
            if K.empty():
                continue
            dist = fs.getNode(f"dist_coeffs_{cam}").mat()
            data.set_camera(cam, CameraParameters(K.mat(), dist))
            R = fs.getNode(f"rotation_{cam}")
            if not R.empty():
                data.set_position(cam, R.mat(), fs.getNode(f"translation_{cam}").mat())
    finally:
        fs.release()
    return data
