"""
Smoke tests for the matplotlib viewer on the non-interactive Agg backend.
"""

from types import SimpleNamespace

import matplotlib

matplotlib.use('Agg')

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402

from divflow.engine import FieldEngine  # noqa: E402
from divflow.visualization.viewer import FieldViewer  # noqa: E402


@pytest.fixture
def viewer():
    engine = FieldEngine(dimension=2, particle_count=30, rng=np.random.default_rng(0))
    engine.set_grid_resolution(20)
    view = FieldViewer(engine)
    yield view
    plt.close(view.fig)


def click(view, x, y, button):
    return SimpleNamespace(inaxes=view.ax, xdata=x, ydata=y, button=button)


class TestFieldViewer:

    def test_update_frame_advances_engine(self, viewer):
        artists = viewer.update_frame(0)
        assert len(artists) == 2
        assert viewer.engine.frame == 1
        assert viewer._heatmap.get_array().shape == (21, 21, 4)

    def test_mouse_buttons_edit_sources(self, viewer):
        viewer.handle_mouse_click(click(viewer, 1.0, 1.0, 1))
        viewer.handle_mouse_click(click(viewer, -1.0, 1.0, 3))
        strengths = sorted(s.strength for s in viewer.engine.sources)
        assert strengths == [-2.0, 2.0]

        viewer.handle_mouse_click(click(viewer, 1.05, 1.0, 2))
        assert [s.strength for s in viewer.engine.sources] == [-2.0]
        viewer.update_frame(1)

    def test_clicks_outside_axes_are_ignored(self, viewer):
        viewer.handle_mouse_click(SimpleNamespace(inaxes=None, xdata=None, ydata=None, button=1))
        assert len(viewer.engine.sources) == 0

    def test_hotkeys(self, viewer):
        viewer.engine.add_source(0.0, 0.0)
        viewer.handle_key_press(SimpleNamespace(key=' '))
        assert not viewer.engine.playing
        viewer.handle_key_press(SimpleNamespace(key='c'))
        assert len(viewer.engine.sources) == 0

    def test_three_dimensional_frame(self):
        engine = FieldEngine(dimension=3, particle_count=20, rng=np.random.default_rng(1))
        view = FieldViewer(engine)
        try:
            view.update_frame(0)
            assert engine.frame == 1
        finally:
            plt.close(view.fig)
