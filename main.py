#!/usr/bin/env python3
"""
Upwise Upscaler: Desktop GUI Application
==========================================
Pick (or drop) PNG, JPG, JPEG or WEBP images, choose a profile and an
upscale factor, then compare each original with its upscaled version.
"""

import customtkinter as ctk
from tkinter import filedialog, messagebox
from PIL import Image
import asyncio
import logging
import os
import queue
import threading
from io import BytesIO

from batch import BatchProcessingError
from processor import (
    MAX_SCALE, MIN_SCALE, PROFILES, InputFile,
    collect_images, data_uri_to_bytes, format_size, profile_color,
)
from session import SessionState

# ---------------------------------------------------------------------------
# Drag-and-drop support (windnd, Windows native)
# ---------------------------------------------------------------------------
try:
    import windnd
    HAS_DND = True
except ImportError:
    HAS_DND = False

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Appearance
# ---------------------------------------------------------------------------
ctk.set_appearance_mode("dark")
ctk.set_default_color_theme("blue")

PREVIEW_SIZE = 260
THUMB_SIZE = 320


def _thumbnail(uri: str, size: int) -> ctk.CTkImage:
    """Build a CTkImage from a data URI, fitted into a size x size box."""
    img = Image.open(BytesIO(data_uri_to_bytes(uri)))
    img.thumbnail((size, size), Image.LANCZOS)
    return ctk.CTkImage(light_image=img, dark_image=img, size=img.size)


# ═══════════════════════════════════════════════════════════════════════════
# Application Window
# ═══════════════════════════════════════════════════════════════════════════

class App(ctk.CTk):
    """Main application window."""

    def __init__(self):
        super().__init__()

        self.title("Upwise AI")
        self.geometry("1200x860")
        self.minsize(980, 700)

        # ── state ──
        self.session = SessionState()
        self._images: list = []        # prevent GC of CTkImages
        self._drop_queue: queue.Queue = queue.Queue()  # thread-safe DnD queue

        # ── build ──
        self._build_ui()
        self._setup_dnd()
        self._refresh_selection()
        self.protocol("WM_DELETE_WINDOW", self._on_close)

    # ═══════════════════════════════════════════════════════════════════
    # UI CONSTRUCTION
    # ═══════════════════════════════════════════════════════════════════

    def _build_ui(self):
        self.grid_columnconfigure(0, weight=2)
        self.grid_columnconfigure(1, weight=1, minsize=300)
        self.grid_rowconfigure(0, weight=0)
        self.grid_rowconfigure(2, weight=1)

        self._build_upload_area()
        self._build_preview()
        self._build_controls()
        self._build_results()

    # ── Upload area ───────────────────────────────────────────────────

    def _build_upload_area(self):
        area = ctk.CTkFrame(self, border_width=2, border_color=("gray70", "gray30"))
        area.grid(row=0, column=0, padx=(15, 5), pady=15, sticky="nsew")
        area.grid_columnconfigure(0, weight=1)

        self.selection_title = ctk.CTkLabel(
            area, text="", font=ctk.CTkFont(size=22, weight="bold"),
        )
        self.selection_title.grid(row=0, column=0, padx=20, pady=(40, 8))

        self.selection_names = ctk.CTkLabel(
            area, text="", wraplength=560,
            text_color=("gray50", "gray60"), font=ctk.CTkFont(size=14),
        )
        self.selection_names.grid(row=1, column=0, padx=20, pady=(0, 12))

        self.selection_stats = ctk.CTkLabel(
            area, text="", text_color=("gray50", "gray60"), font=ctk.CTkFont(size=12),
        )
        self.selection_stats.grid(row=2, column=0, padx=20, pady=(0, 8))

        self.select_btn = ctk.CTkButton(
            area, text="Select Images", height=34, command=self._browse_files,
        )
        self.select_btn.grid(row=3, column=0, padx=20, pady=(0, 40))

    # ── Preview ───────────────────────────────────────────────────────

    def _build_preview(self):
        pf = ctk.CTkFrame(self)
        pf.grid(row=0, column=1, padx=(5, 15), pady=15, sticky="nsew")
        pf.grid_columnconfigure(0, weight=1)

        hdr = ctk.CTkFrame(pf, fg_color="transparent")
        hdr.grid(row=0, column=0, padx=12, pady=(10, 5), sticky="ew")
        hdr.grid_columnconfigure(0, weight=1)

        ctk.CTkLabel(
            hdr, text="Preview", font=ctk.CTkFont(size=16, weight="bold"),
        ).grid(row=0, column=0, sticky="w")
        ctk.CTkButton(
            hdr, text="X", width=28, height=28,
            fg_color=("gray75", "gray30"), hover_color=("gray65", "gray40"),
            command=self._clear_all,
        ).grid(row=0, column=1, sticky="e")

        self.preview_label = ctk.CTkLabel(
            pf, text="No image selected", width=PREVIEW_SIZE, height=PREVIEW_SIZE,
            text_color=("gray50", "gray60"),
        )
        self.preview_label.grid(row=1, column=0, padx=12, pady=5)

        self.preview_name = ctk.CTkLabel(
            pf, text="", font=ctk.CTkFont(size=12), text_color=("gray40", "gray60"),
        )
        self.preview_name.grid(row=2, column=0, padx=12, pady=(0, 10), sticky="w")

    # ── Controls bar: profile, scale, folder, upscale ─────────────────

    def _build_controls(self):
        bar = ctk.CTkFrame(self, corner_radius=0)
        bar.grid(row=1, column=0, columnspan=2, sticky="ew")

        # --- profile ---
        self.profile_dot = ctk.CTkLabel(bar, text="●", font=ctk.CTkFont(size=20))
        self.profile_dot.pack(side="left", padx=(15, 4), pady=12)
        self.profile_menu = ctk.CTkOptionMenu(
            bar, values=list(PROFILES), width=150, command=self._on_profile_change,
        )
        self.profile_menu.set(self.session.profile)
        self.profile_menu.pack(side="left")

        # --- scale ---
        scale_sec = ctk.CTkFrame(bar, fg_color="transparent")
        scale_sec.pack(side="left", padx=20, pady=12)

        self.scale_value_label = ctk.CTkLabel(
            scale_sec, text="", width=50, font=ctk.CTkFont(size=20, weight="bold"),
        )
        self.scale_value_label.grid(row=0, column=0)
        self.scale_hint_label = ctk.CTkLabel(
            scale_sec, text="", font=ctk.CTkFont(size=12), text_color=("gray50", "gray60"),
        )
        self.scale_hint_label.grid(row=1, column=0)

        self.scale_slider = ctk.CTkSlider(
            scale_sec, from_=MIN_SCALE, to=MAX_SCALE,
            number_of_steps=MAX_SCALE - MIN_SCALE, width=140,
            command=self._on_scale_change,
        )
        self.scale_slider.set(self.session.scale)
        self.scale_slider.grid(row=0, column=1, rowspan=2, padx=(10, 0))

        # --- upscale ---
        self.upscale_btn = ctk.CTkButton(
            bar, text="Upscale", width=140, height=38,
            font=ctk.CTkFont(size=14, weight="bold"),
            command=self._upscale,
        )
        self.upscale_btn.pack(side="right", padx=15, pady=12)

        # --- output folder ---
        self.folder_btn = ctk.CTkButton(
            bar, text="Output folder", width=150, height=38,
            fg_color=("gray75", "gray30"), hover_color=("gray65", "gray40"),
            command=self._browse_output_folder,
        )
        self.folder_btn.pack(side="right", padx=5, pady=12)

        # --- progress ---
        progress_sec = ctk.CTkFrame(bar, fg_color="transparent")
        progress_sec.pack(side="right", fill="x", expand=True, padx=10, pady=12)

        self.progress_label = ctk.CTkLabel(
            progress_sec, text="Ready", font=ctk.CTkFont(size=12),
        )
        self.progress_label.pack(side="right", padx=(10, 0))

        self.progress_bar = ctk.CTkProgressBar(progress_sec)
        self.progress_bar.pack(side="right", fill="x", expand=True)
        self.progress_bar.set(0)

        self._refresh_controls()

    # ── Results ───────────────────────────────────────────────────────

    def _build_results(self):
        self.results_frame = ctk.CTkScrollableFrame(self, label_text="Results")
        self.results_frame.grid(
            row=2, column=0, columnspan=2, padx=15, pady=(10, 15), sticky="nsew",
        )
        self.results_frame.grid_columnconfigure((0, 1), weight=1)

    # ═══════════════════════════════════════════════════════════════════
    # EVENT HANDLERS
    # ═══════════════════════════════════════════════════════════════════

    def _on_profile_change(self, value):
        self.session.set_profile(value)
        self._refresh_controls()

    def _on_scale_change(self, value):
        self.session.set_scale(value)
        self._refresh_controls()

    def _browse_output_folder(self):
        path = filedialog.askdirectory(title="Select Output Folder")
        if not path:
            logger.info("Output folder selection cancelled")
            return
        self.session.set_output_folder(os.path.basename(os.path.normpath(path)))
        self._refresh_controls()

    # ── DnD (windnd hooks the entire window) ────────────────────────

    def _setup_dnd(self):
        """Register the whole window as a drop target using windnd."""
        if not HAS_DND:
            return
        windnd.hook_dropfiles(self, func=self._on_drop_files)
        self._poll_drop_queue()

    def _poll_drop_queue(self):
        """Check for dropped paths from the main thread (safe for tkinter)."""
        try:
            while True:
                paths = self._drop_queue.get_nowait()
                self._select_paths(paths)
        except queue.Empty:
            pass
        self.after(150, self._poll_drop_queue)

    def _on_drop_files(self, raw_paths: list):
        """
        Called by windnd from a raw Windows thread.
        MUST NOT touch any tkinter/CTk objects; just push to the queue.
        """
        paths: list[str] = []
        for p in raw_paths:
            if isinstance(p, bytes):
                try:
                    decoded = p.decode('utf-8')
                except UnicodeDecodeError:
                    decoded = p.decode('gbk', errors='replace')
            else:
                decoded = str(p)
            paths.append(decoded)

        self._drop_queue.put(paths)

    # ═══════════════════════════════════════════════════════════════════
    # FILE OPERATIONS
    # ═══════════════════════════════════════════════════════════════════

    def _browse_files(self):
        paths = filedialog.askopenfilenames(
            title="Select Images",
            filetypes=[
                ("Image files", "*.png *.jpg *.jpeg *.webp"),
                ("All files", "*.*"),
            ],
        )
        if paths:
            self._select_paths(list(paths))

    def _select_paths(self, paths: list[str]):
        if self.session.in_progress:
            logger.info("Selection ignored while processing")
            return
        files: list[InputFile] = []
        for p in collect_images(paths):
            try:
                files.append(InputFile.from_path(p))
            except OSError as exc:
                logger.warning("Could not read %s: %s", p, exc)
                messagebox.showwarning("Unreadable File", f"Could not read {p}:\n{exc}")

        self.session.select_files(files)
        self._clear_results_view()
        self._refresh_selection()

    def _clear_all(self):
        self.session.clear()
        self._clear_results_view()
        self._refresh_selection()
        self.progress_label.configure(text="Ready")
        self.progress_bar.set(0)

    def _refresh_selection(self):
        session = self.session
        self.selection_title.configure(text=session.selection_title)
        self.selection_names.configure(
            text=session.selection_names
            or "Select or drag and drop a PNG, JPG,\nJPEG or WEBP images.",
        )
        total = sum(f.size for f in session.files)
        self.selection_stats.configure(
            text=f"{format_size(total)} total" if session.files else "",
        )

        if session.preview:
            try:
                image = _thumbnail(session.preview, PREVIEW_SIZE)
            except (OSError, ValueError) as exc:
                logger.warning("Preview unavailable: %s", exc)
                self.preview_label.configure(image=None, text="Preview unavailable")
            else:
                self._images.append(image)
                self.preview_label.configure(image=image, text="")
            self.preview_name.configure(text=session.files[0].name)
        else:
            self.preview_label.configure(image=None, text="No image selected")
            self.preview_name.configure(text="")

        self._refresh_controls()

    def _refresh_controls(self):
        session = self.session
        self.profile_dot.configure(text_color=profile_color(session.profile))
        self.scale_value_label.configure(text=f"{session.scale}X")
        self.scale_hint_label.configure(text=session.scale_label)
        self.folder_btn.configure(text=session.output_folder or "Output folder")

        if session.in_progress:
            self.upscale_btn.configure(text="Processing...", state="disabled")
            self.select_btn.configure(state="disabled")
        else:
            self.upscale_btn.configure(
                text="Upscale", state="normal" if session.files else "disabled",
            )
            self.select_btn.configure(state="normal")

    # ═══════════════════════════════════════════════════════════════════
    # UPSCALE (asyncio on a worker thread)
    # ═══════════════════════════════════════════════════════════════════

    def _upscale(self):
        if not self.session.files or self.session.in_progress:
            return
        self.progress_bar.set(0)
        self.upscale_btn.configure(text="Processing...", state="disabled")
        self.select_btn.configure(state="disabled")
        threading.Thread(target=self._bg_upscale, daemon=True).start()

    def _bg_upscale(self):
        def progress(i, total, name):
            self.after(0, lambda c=i, t=total, n=name: self._upscale_progress(c, t, n))

        try:
            results = asyncio.run(self.session.run_upscale(on_progress=progress))
        except BatchProcessingError as exc:
            self.after(0, lambda e=exc: self._upscale_failed(e))
            return
        self.after(0, lambda r=results: self._upscale_done(r))

    def _upscale_progress(self, current: int, total: int, name: str):
        self.progress_bar.set(current / total if total else 0)
        self.progress_label.configure(text=f"Upscaling {current + 1}/{total}: {name}")

    def _upscale_done(self, results):
        self._refresh_controls()
        if results is None:
            self.progress_label.configure(text="Cancelled")
            return
        self.progress_bar.set(1.0)
        self.progress_label.configure(text=f"Done! {len(results)} upscaled")
        self._show_results()

    def _upscale_failed(self, exc: BatchProcessingError):
        self._refresh_controls()
        self.progress_label.configure(text=f"Failed on {exc.file_name}")
        messagebox.showerror(
            "Upscale Failed",
            f"Could not upscale {exc.file_name}.\n{exc.cause}",
        )

    # ═══════════════════════════════════════════════════════════════════
    # RESULTS
    # ═══════════════════════════════════════════════════════════════════

    def _clear_results_view(self):
        for w in self.results_frame.winfo_children():
            w.destroy()
        self._images.clear()

    def _show_results(self):
        self._clear_results_view()
        scale = self.session.scale

        for i, result in enumerate(self.session.results):
            card = ctk.CTkFrame(self.results_frame)
            card.grid(row=i, column=0, columnspan=2, sticky="ew", padx=5, pady=8)
            card.grid_columnconfigure((0, 1), weight=1)

            ctk.CTkLabel(
                card, text=result.file_name, font=ctk.CTkFont(size=14, weight="bold"),
            ).grid(row=0, column=0, columnspan=2, padx=12, pady=(10, 4), sticky="w")

            for col, (caption, uri) in enumerate(
                (("Before", result.original), (f"After ({scale}x)", result.upscaled))
            ):
                ctk.CTkLabel(
                    card, text=caption, font=ctk.CTkFont(size=12),
                    text_color=("gray40", "gray70"),
                ).grid(row=1, column=col, padx=12, sticky="w")
                try:
                    image = _thumbnail(uri, THUMB_SIZE)
                except (OSError, ValueError) as exc:
                    logger.warning("Cannot display %s for %s: %s",
                                   caption, result.file_name, exc)
                    ctk.CTkLabel(card, text="(not displayable)").grid(
                        row=2, column=col, padx=12, pady=(4, 12),
                    )
                    continue
                self._images.append(image)
                ctk.CTkLabel(card, image=image, text="").grid(
                    row=2, column=col, padx=12, pady=(4, 12),
                )

    # ═══════════════════════════════════════════════════════════════════
    # CLEANUP
    # ═══════════════════════════════════════════════════════════════════

    def _on_close(self):
        self.session.clear()
        self.destroy()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )
    app = App()
    app.mainloop()


# ═══════════════════════════════════════════════════════════════════════════
if __name__ == "__main__":
    main()
