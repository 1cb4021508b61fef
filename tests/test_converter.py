import numpy as np

from marker_tracking.mt_types import Frame, Frameset, Mark, Positset
from mocap_app.converter import MARK_COLOR, FramesetConverter


def _frameset(idx, images):
    return Frameset(idx, [Frame(idx, 0, img) for img in images])


def test_frameset_is_converted_to_rgb():
    converter = FramesetConverter(2)
    received = []
    converter.images_ready.connect(received.append)
    bgr = np.zeros((20, 30, 3), dtype=np.uint8)
    bgr[..., 0] = 200  # blue
    gray = np.full((20, 30), 90, dtype=np.uint8)

    converter.process_frameset(_frameset(1, [bgr, gray]))

    images = received[0]
    assert images[0][0, 0].tolist() == [0, 0, 200]
    assert images[1].shape == (20, 30, 3)
    assert images[1][5, 5].tolist() == [90, 90, 90]
    assert converter.images is images


def test_last_positset_is_drawn():
    converter = FramesetConverter(1)
    converter.process_positset(Positset(1, [Mark.circle((15, 10), 4)]))

    converter.process_frameset(_frameset(2, [np.zeros((20, 30, 3), dtype=np.uint8)]))

    image = converter.images[0]
    assert (image == np.array(MARK_COLOR, dtype=np.uint8)).all(axis=2).any()
    # The inside of the ring stays untouched
    assert image[10, 15].tolist() == [0, 0, 0]


def test_rectangle_mark_is_drawn():
    image = np.zeros((30, 30, 3), dtype=np.uint8)
    FramesetConverter.draw_mark(image, Mark.rectangle((15, 15), (10, 6)))
    assert image[12, 10].tolist() == list(MARK_COLOR)


def test_arity_mismatch_is_ignored():
    converter = FramesetConverter(2)
    received = []
    converter.images_ready.connect(received.append)

    converter.process_frameset(_frameset(1, [np.zeros((4, 4, 3), dtype=np.uint8)]))
    converter.process_positset(Positset(1, [Mark.circle((1, 1), 1)]))

    assert received == []
    assert converter.images == []


def test_create_mark_is_published():
    converter = FramesetConverter(2)
    created = []
    converter.mark_created.connect(lambda cam, mark: created.append((cam, mark)))
    mark = Mark.circle((5, 6), 2)

    converter.create_mark(1, mark)

    assert created == [(1, mark)]


def test_dispose_drops_connections():
    converter = FramesetConverter(1)
    converter.images_ready.connect(lambda images: None)
    converter.process_frameset(_frameset(1, [np.zeros((4, 4, 3), dtype=np.uint8)]))

    converter.delete_later()

    assert converter.images_ready.receivers() == 0
    assert converter.images == []
