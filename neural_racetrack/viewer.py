"""
pygame window for watching a Simulation.

Left: the track, obstacles and cars (best car highlighted with its sensor
rays). Right: a pseudo-3D strip drawn from the best car's view fan.
"""

import math
import os

import pygame

from .agent import AgentState
from .config import VIEW_WIDTH
from .geometry import remap
from .sensors import HitType

TARGET_FPS = 60
MAX_CYCLES = 10


class Viewer:
    def __init__(self, sim, cycles=1):
        self.sim = sim
        self.cycles = max(1, min(MAX_CYCLES, cycles))
        self.track_width = int(sim.config.width)
        self.height = int(sim.config.height)
        self.width = self.track_width + VIEW_WIDTH
        self.paused = False

        os.environ.setdefault("SDL_VIDEO_CENTERED", "1")
        pygame.init()
        self.screen = pygame.display.set_mode((self.width, self.height))
        pygame.display.set_caption("Neural Racetrack")
        self.clock = pygame.time.Clock()
        self.font = pygame.font.SysFont("Consolas", 16)
        self.font_large = pygame.font.SysFont("Consolas", 26, bold=True)

    def draw_track(self):
        track = self.sim.track
        for wall in track.walls:
            pygame.draw.line(self.screen, (255, 255, 255), wall.a, wall.b, 1)
        for obstacle in track.obstacles:
            pygame.draw.circle(self.screen, (255, 0, 0), (int(obstacle.pos[0]), int(obstacle.pos[1])), 5)

    def draw_car(self, agent, is_leader=False):
        if agent.state is AgentState.ALIVE:
            color = (0, 255, 0) if is_leader else (200, 200, 200)
        else:
            color = (80, 80, 80)
        cos_a, sin_a = math.cos(agent.heading), math.sin(agent.heading)
        hw, hh = 10, 5
        pts = [
            (agent.x + cos_a * hw - sin_a * hh, agent.y + sin_a * hw + cos_a * hh),
            (agent.x + cos_a * hw + sin_a * hh, agent.y + sin_a * hw - cos_a * hh),
            (agent.x - cos_a * hw + sin_a * hh, agent.y - sin_a * hw - cos_a * hh),
            (agent.x - cos_a * hw - sin_a * hh, agent.y - sin_a * hw + cos_a * hh),
        ]
        pygame.draw.polygon(self.screen, color, pts, 0 if is_leader else 1)

    def draw_leader(self, best):
        reading = best.last_reading
        if reading is not None:
            for pt in reading.hits:
                if pt is not None:
                    pygame.draw.line(self.screen, (255, 100, 100), best.position, pt, 1)
        goal = self.sim.track.checkpoints[best.checkpoint_index]
        pygame.draw.line(self.screen, (0, 200, 255), goal.a, goal.b, 2)

    def draw_view(self):
        pygame.draw.rect(self.screen, (0, 0, 0), (self.track_width, 0, VIEW_WIDTH, self.height))
        view = self.sim.render_view()
        if view is None:
            return
        n = len(view.distances)
        w = VIEW_WIDTH / n
        swq = self.sim.config.sensor_range ** 2
        for i, (d, kind) in enumerate(zip(view.distances, view.hit_types)):
            if kind is HitType.NONE:
                continue
            sq = min(d * d, swq)
            b = int(remap(sq, 0, swq, 200, 0))
            h = remap(sq, 0, swq, self.height, 0)
            color = (b, 0, 0) if kind is HitType.OBSTACLE else (b, b, min(255, b + 30))
            rect = pygame.Rect(0, 0, int(w + 1), int(h))
            rect.center = (int(self.track_width + i * w + w / 2), self.height // 2)
            pygame.draw.rect(self.screen, color, rect)

    def draw_hud(self):
        stats = self.sim.stats()
        best = self.sim.best_agent()
        lines = [
            f"Gen: {stats.generation}  |  Alive: {stats.alive_count}/{self.sim.config.population_size}",
            f"Best: {stats.best_fitness}  Avg: {stats.avg_fitness:.1f}  Speed: {stats.avg_speed:.2f}",
            f"Laps: {stats.best_laps}  (All-time: {self.sim.state.all_time_best_laps})",
            f"Obstacle dist: {best.closest_obstacle_distance:.1f}" if best else "Obstacle dist: -",
            f"Cycles: {self.cycles}  |  Dynamic: {'ON' if self.sim.state.dynamic_obstacles else 'OFF'}"
            f"  |  FPS: {self.clock.get_fps():.0f}",
        ]
        for i, line in enumerate(lines):
            self.screen.blit(self.font.render(line, True, (255, 255, 255)), (10, 10 + i * 18))
        help_txt = self.font.render("SPACE:Pause  D:Dynamic  +/-:Speed  S:Save  ESC:Quit", True, (130, 130, 130))
        self.screen.blit(help_txt, (10, self.height - 24))

    def handle_events(self):
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return False
            if event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    return False
                elif event.key == pygame.K_SPACE:
                    self.paused = not self.paused
                elif event.key == pygame.K_d:
                    self.sim.toggle_dynamic_obstacles()
                elif event.key in (pygame.K_EQUALS, pygame.K_PLUS, pygame.K_KP_PLUS):
                    self.cycles = min(MAX_CYCLES, self.cycles + 1)
                elif event.key in (pygame.K_MINUS, pygame.K_KP_MINUS):
                    self.cycles = max(1, self.cycles - 1)
                elif event.key == pygame.K_s:
                    self.sim.save_now()
        return True

    def run(self, on_generation=None):
        running = True
        while running:
            self.clock.tick(TARGET_FPS)
            running = self.handle_events()
            if self.paused:
                txt = self.font_large.render("PAUSED - SPACE to continue", True, (255, 255, 0))
                self.screen.blit(txt, (self.track_width // 2 - txt.get_width() // 2, self.height // 2))
                pygame.display.flip()
                continue

            for report in self.sim.tick(self.cycles):
                if on_generation is not None:
                    on_generation(report)

            self.screen.fill((0, 0, 0))
            self.draw_track()
            best = self.sim.best_agent()
            for agent in self.sim.population.live:
                if agent is not best:
                    self.draw_car(agent)
            if best is not None:
                self.draw_car(best, is_leader=True)
                self.draw_leader(best)
            self.draw_view()
            self.draw_hud()
            pygame.display.flip()
        pygame.quit()
