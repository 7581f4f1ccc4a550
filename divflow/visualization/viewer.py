"""
Matplotlib viewer for divflow.

A thin host around FieldEngine: it draws the divergence heat map, the static
arrow grid and the tracer particles, and drives the engine from a
FuncAnimation. Mouse and keyboard events are translated into engine calls.

Controls (2D):
    left click      add a source
    right click     add a sink
    middle click    remove the nearest source
    space           play / pause
    c               clear all sources
"""

import logging

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.animation import FuncAnimation

from .. import config

logger = logging.getLogger(__name__)

PAUSE_HOTKEY = ' '
CLEAR_SOURCES_HOTKEY = 'c'
BACKGROUND_COLOR = '#1a1a1a'
SOURCE_COLOR = '#ff5555'
SINK_COLOR = '#5599ff'


class FieldViewer:
    """
    Interactive 2D/3D view of a FieldEngine.

    Args:
        engine (FieldEngine): Engine to draw and drive
    """

    def __init__(self, engine):
        self.engine = engine
        self.fig = plt.figure(figsize=(7, 7), facecolor=BACKGROUND_COLOR)
        if engine.dimension == 3:
            self.ax = self.fig.add_subplot(111, projection='3d')
        else:
            self.ax = self.fig.add_subplot(111)
        self.ax.set_facecolor(BACKGROUND_COLOR)
        self.anim = None
        self._heatmap = None
        self._arrows = None
        self._particles = None
        self._sources = None
        self._title = None

        if engine.dimension == 2:
            self._setup_2d()
            self.fig.canvas.mpl_connect('button_press_event', self.handle_mouse_click)
        else:
            self._setup_3d()
        self.fig.canvas.mpl_connect('key_press_event', self.handle_key_press)

    # -- figure setup ---------------------------------------------------------

    def _setup_2d(self):
        r = self.engine.domain_range
        self._heatmap = self.ax.imshow(
            np.zeros((2, 2, 4)), origin='lower', extent=(-r, r, -r, r),
            interpolation='nearest', zorder=1)
        self._particles = self.ax.scatter([], [], s=4, zorder=4)
        self._sources = self.ax.scatter([], [], s=80, edgecolors='white', zorder=5)
        self.ax.axhline(0, color='#666666', linewidth=1, zorder=2)
        self.ax.axvline(0, color='#666666', linewidth=1, zorder=2)
        self.ax.set_xlim(-r, r)
        self.ax.set_ylim(-r, r)
        self.ax.set_aspect('equal')
        self.ax.tick_params(colors='#999999')
        self._title = self.ax.set_title('', color='white', fontsize=10)
        self._redraw_field_2d()

    def _setup_3d(self):
        r = self.engine.domain_range
        self.ax.set_xlim(-r, r)
        self.ax.set_ylim(-r, r)
        self.ax.set_zlim(-r, r)
        self._particles = self.ax.scatter([], [], [], s=3)
        self._title = self.ax.set_title('', color='white', fontsize=10)
        self._redraw_field_3d()

    def _redraw_field_2d(self):
        snapshot = self.engine.recompute()
        if self._arrows is not None:
            self._arrows.remove()
        arrows = snapshot.arrows
        mask = arrows.drawable
        alpha = 0.3 if self.engine.playing else 0.9
        self._arrows = self.ax.quiver(
            arrows.positions[mask, 0], arrows.positions[mask, 1],
            arrows.directions[mask, 0], arrows.directions[mask, 1],
            color='white', alpha=alpha, pivot='tail', zorder=3,
            scale=1.0 / (0.8 * 2 * self.engine.domain_range / self.engine.arrow_resolution),
            scale_units='xy', width=0.003)

        sources = snapshot.evaluator.sources
        if sources:
            self._sources.set_offsets(np.array([[s.x, s.y] for s in sources]))
            self._sources.set_color([SOURCE_COLOR if s.strength > 0 else SINK_COLOR for s in sources])
        else:
            self._sources.set_offsets(np.zeros((0, 2)))

        div = snapshot.divergence
        errors = ", ".join(f"F{axis}: {msg}" for axis, msg in snapshot.errors.items())
        self._title.set_text(errors or f"div: {div.minimum:.2f} .. {div.maximum:.2f}")

    def _redraw_field_3d(self):
        snapshot = self.engine.recompute()
        if self._arrows is not None:
            self._arrows.remove()
        arrows = snapshot.arrows
        mask = arrows.drawable
        length = np.minimum(arrows.magnitudes[mask] * 0.3, 0.5)
        vectors = arrows.directions[mask] * length[:, np.newaxis]
        self._arrows = self.ax.quiver(
            arrows.positions[mask, 0], arrows.positions[mask, 1], arrows.positions[mask, 2],
            vectors[:, 0], vectors[:, 1], vectors[:, 2], color='#66aaff', linewidth=0.8)
        errors = ", ".join(f"F{axis}: {msg}" for axis, msg in snapshot.errors.items())
        self._title.set_text(errors)

    # -- animation ------------------------------------------------------------

    def update_frame(self, frame):
        """Advance the engine one tick and refresh the artists."""
        field_changed = self.engine.dirty
        self.engine.step()
        if field_changed:
            if self.engine.dimension == 2:
                self._redraw_field_2d()
            else:
                self._redraw_field_3d()

        positions, life = self.engine.particles_snapshot()
        alpha = np.clip(life, 0.0, 1.0)
        colors = np.ones((len(life), 4))
        colors[:, 3] = alpha

        if self.engine.dimension == 2:
            rgba = self.engine.heatmap_rgba()
            # grid[i, j] has i along x; imshow rows run along y
            self._heatmap.set_data(np.transpose(rgba, (1, 0, 2)))
            self._particles.set_offsets(positions)
            self._particles.set_color(colors)
            return self._heatmap, self._particles
        self._particles._offsets3d = (positions[:, 0], positions[:, 1], positions[:, 2])
        self._particles.set_color(colors)
        return (self._particles,)

    def run(self, frames=None, interval=None):
        """Create the FuncAnimation and show the figure."""
        self.anim = FuncAnimation(
            self.fig, self.update_frame,
            frames=frames or config.ANIMATION_FRAMES,
            interval=interval or config.ANIMATION_INTERVAL, blit=False)
        plt.show()
        return self.anim

    def save(self, path, frames=None, fps=30):
        """Render ``frames`` ticks to an animation file (gif via pillow, mp4 via ffmpeg)."""
        self.anim = FuncAnimation(self.fig, self.update_frame, frames=frames or config.ANIMATION_FRAMES,
                                  interval=1000 / fps, blit=False)
        self.anim.save(path, fps=fps)
        logger.info("Saved animation to %s", path)

    # -- events ---------------------------------------------------------------

    def handle_mouse_click(self, event):
        if event.inaxes != self.ax or event.xdata is None or event.ydata is None:
            return
        button = int(getattr(event, 'button', 1))
        if button == 1:
            self.engine.add_source(event.xdata, event.ydata, kind='source')
        elif button == 3:
            self.engine.add_source(event.xdata, event.ydata, kind='sink')
        elif button == 2:
            nearest = self.engine.sources.find_near(event.xdata, event.ydata)
            if nearest is not None:
                self.engine.remove_source(nearest.id)

    def handle_key_press(self, event):
        if event.key == PAUSE_HOTKEY:
            playing = self.engine.toggle()
            logger.info("Animation %s", "resumed" if playing else "paused")
        elif event.key == CLEAR_SOURCES_HOTKEY:
            self.engine.clear_sources()
