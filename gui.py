# =============================================================================
# gui.py
# TutorialDialog: first-run walkthrough with "don't show again".
# CameraDialog: live preview, camera switching, capture.
# ResultPresenter: identification, health, and care guide panels.
# FroGUI: main window, capture/upload dispatch, analysis, logging.
# =============================================================================

import io
import logging
import queue
import threading
from typing import Callable, Optional

import tkinter as tk
from tkinter import filedialog, ttk, messagebox
import cv2
from PIL import Image, ImageTk, ImageDraw

from analysis import AnalysisOrchestrator
from camera import MediaCaptureController, OpenCVCameraBackend
from constants import IMG_FILETYPES, TUTORIAL_STEPS, VISION_MODEL, TEXT_MODEL
from errors import CameraUnavailable, FroError
from fallback import CaptureFallbackHandler
from models import AnalysisCycle, AnalysisState, ImagePayload
from preferences import Preferences

log = logging.getLogger(__name__)

GREEN      = "#2d6a2d"
DARK_GREEN = "#1D3B1D"
RED        = "#8B1A1A"

PREVIEW_SIZE = (420, 320)


class QueueLogHandler(logging.Handler):
    """Pushes formatted records onto the GUI log queue."""

    def __init__(self, log_queue: queue.Queue):
        super().__init__()
        self.log_queue = log_queue
        self.setFormatter(logging.Formatter("%(asctime)s  %(message)s", "%H:%M:%S"))

    def emit(self, record: logging.LogRecord):
        try:
            self.log_queue.put(self.format(record))
        except Exception:
            self.handleError(record)


def payload_to_photo(payload: ImagePayload, size=PREVIEW_SIZE) -> ImageTk.PhotoImage:
    with Image.open(io.BytesIO(payload.data)) as im:
        im = im.convert("RGB")
        im.thumbnail(size, Image.LANCZOS)
        return ImageTk.PhotoImage(im)


# =============================================================================
# TUTORIAL
# =============================================================================

class TutorialDialog:
    def __init__(self, parent: tk.Tk, prefs: Preferences):
        self.prefs = prefs
        self.win = tk.Toplevel(parent)
        self.win.title("Welcome to Frô!")
        self.win.resizable(False, False)
        self.win.transient(parent)
        self.win.protocol("WM_DELETE_WINDOW", self._close)

        banner = tk.Frame(self.win, bg=DARK_GREEN)
        banner.pack(fill="x")
        tk.Label(banner, text="Welcome to Frô!", bg=DARK_GREEN, fg="white",
                 font=("Arial", 16, "bold"), pady=10).pack()
        tk.Label(banner, text="See how easy it is to look after your plants.",
                 bg=DARK_GREEN, fg="#CDE8CD", font=("Arial", 10)).pack(pady=(0, 8))

        body = tk.Frame(self.win, padx=20, pady=12)
        body.pack(fill="both")
        for title, text in TUTORIAL_STEPS:
            tk.Label(body, text=title, font=("Arial", 11, "bold"),
                     anchor="w").pack(fill="x", pady=(6, 0))
            tk.Label(body, text=text, font=("Arial", 9), fg="#444",
                     wraplength=360, justify="left", anchor="w").pack(fill="x")

        footer = tk.Frame(self.win, padx=20, pady=10)
        footer.pack(fill="x")
        self.dont_show_var = tk.BooleanVar(value=False)
        tk.Checkbutton(footer, text="Don't show again",
                       variable=self.dont_show_var).pack(side="left")
        tk.Button(footer, text="Get started", command=self._close,
                  bg=GREEN, fg="white", font=("Arial", 9, "bold"),
                  padx=12).pack(side="right")

    def _close(self):
        if self.dont_show_var.get():
            try:
                self.prefs.mark_tutorial_seen()
            except OSError as e:
                log.warning("Could not save tutorial preference: %s", e)
        self.win.destroy()


# =============================================================================
# CAMERA DIALOG
# =============================================================================

class CameraDialog:
    """Live preview window. Every way out of it releases the camera."""

    FRAME_INTERVAL_MS = 40

    def __init__(self, parent: tk.Tk, controller: MediaCaptureController,
                 on_capture: Callable[[ImagePayload], None],
                 on_unavailable: Callable[[CameraUnavailable], None]):
        self.parent         = parent
        self.controller     = controller
        self.on_capture     = on_capture
        self.on_unavailable = on_unavailable
        self._photo_ref     = None
        self._closed        = False
        self._preview_running = False

        self.win = tk.Toplevel(parent)
        self.win.title("Camera")
        self.win.transient(parent)
        self.win.protocol("WM_DELETE_WINDOW", self.close)

        self.video_label = tk.Label(self.win, bg="black", fg="white",
                                    text="Starting camera...", width=52, height=18)
        self.video_label.pack(padx=10, pady=10)
        self.status_label = tk.Label(self.win, text="Requesting camera access...",
                                     font=("", 8), fg="#555")
        self.status_label.pack()

        btns = tk.Frame(self.win, pady=8)
        btns.pack()
        self.switch_btn = tk.Button(btns, text="Switch Camera", command=self._switch,
                                    state="disabled", padx=8)
        self.switch_btn.pack(side="left", padx=4)
        tk.Button(btns, text="Cancel", command=self.close, padx=8).pack(side="left", padx=4)
        self.capture_btn = tk.Button(btns, text="Capture Photo", command=self._capture,
                                     bg=GREEN, fg="white", font=("", 10, "bold"),
                                     state="disabled", padx=8)
        self.capture_btn.pack(side="left", padx=4)

        self.win.after(0, self._start)

    def _start(self, device_id: Optional[str] = None):
        self._in_background(lambda: self.controller.acquire(device_id))

    def _in_background(self, action: Callable[[], object]):
        """Open or switch cameras off the Tk thread; enumeration can take seconds."""
        def worker():
            try:
                action()
            except CameraUnavailable as e:
                self.parent.after(0, self._unavailable, e)
                return
            self.parent.after(0, self._after_acquire)
        threading.Thread(target=worker, daemon=True).start()

    def _unavailable(self, e: CameraUnavailable):
        if self._closed:
            return
        self.close()
        self.on_unavailable(e)

    def _after_acquire(self):
        if self._closed:
            # the dialog was cancelled while the camera was opening
            self.controller.release()
            return
        dev = self.controller.current_device
        self.status_label.config(
            text=f"{dev.label}  ({self.controller.current_index + 1}/{len(self.controller.devices)})"
            if dev else "Camera ready"
        )
        self.capture_btn.config(state="normal")
        self.switch_btn.config(state="normal" if len(self.controller.devices) > 1 else "disabled")
        if not self._preview_running:
            self._preview_running = True
            self._schedule_preview()

    def _schedule_preview(self):
        if self._closed:
            return
        frame = self.controller.read_preview()
        if frame is not None:
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            im = Image.fromarray(rgb)
            im.thumbnail(PREVIEW_SIZE, Image.LANCZOS)
            self._photo_ref = ImageTk.PhotoImage(im)
            self.video_label.config(image=self._photo_ref, width=im.width, height=im.height)
        self.win.after(self.FRAME_INTERVAL_MS, self._schedule_preview)

    def _switch(self):
        self.switch_btn.config(state="disabled")
        self.capture_btn.config(state="disabled")
        self.status_label.config(text="Switching camera...")
        self._in_background(self.controller.switch_to_next)

    def _capture(self):
        self.capture_btn.config(state="disabled")
        try:
            payload = self.controller.capture_frame()
        except FroError as e:
            messagebox.showerror("Capture failed", str(e), parent=self.win)
            self.capture_btn.config(state="normal")
            return
        self.close()
        self.on_capture(payload)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self.controller.release()
        self.win.destroy()


# =============================================================================
# RESULT PRESENTER
# =============================================================================

class ResultPresenter:
    """Read-only rendering of an AnalysisCycle."""

    def __init__(self, parent: tk.Widget, on_care_guide: Callable[[], None]):
        self.frame = tk.Frame(parent)

        self.ident_frame = tk.LabelFrame(self.frame, text="Plant Identification",
                                         padx=8, pady=6)
        self.common_lbl = tk.Label(self.ident_frame, font=("Arial", 13, "bold"), anchor="w")
        self.common_lbl.pack(fill="x")
        self.latin_lbl = tk.Label(self.ident_frame, font=("Arial", 10, "italic"),
                                  anchor="w", fg="#333")
        self.latin_lbl.pack(fill="x")
        conf_row = tk.Frame(self.ident_frame)
        conf_row.pack(fill="x", pady=2)
        self.conf_lbl = tk.Label(conf_row, font=("Arial", 9), width=18, anchor="w")
        self.conf_lbl.pack(side="left")
        self.conf_var = tk.DoubleVar()
        ttk.Progressbar(conf_row, variable=self.conf_var, maximum=100).pack(
            side="left", fill="x", expand=True)
        self.desc_lbl = tk.Label(self.ident_frame, font=("Arial", 9), wraplength=560,
                                 justify="left", anchor="w", fg="#444")
        self.desc_lbl.pack(fill="x")

        self.health_frame = tk.LabelFrame(self.frame, text="Health Analysis",
                                          padx=8, pady=6)
        self.status_lbl = tk.Label(self.health_frame, font=("Arial", 11, "bold"), anchor="w")
        self.status_lbl.pack(fill="x")
        self.diag_lbl = tk.Label(self.health_frame, font=("Arial", 9), wraplength=560,
                                 justify="left", anchor="w")
        self.diag_lbl.pack(fill="x", pady=(2, 4))
        tk.Label(self.health_frame, text="Care tips:", font=("Arial", 9, "bold"),
                 anchor="w").pack(fill="x")
        self.tips_lbl = tk.Label(self.health_frame, font=("Arial", 9), wraplength=560,
                                 justify="left", anchor="w", fg="#444")
        self.tips_lbl.pack(fill="x")
        self.guide_btn = tk.Button(self.health_frame, text="Detailed Care Guide",
                                   command=on_care_guide, bg="#1A4F8A", fg="white",
                                   font=("", 9, "bold"), padx=8)
        self.guide_btn.pack(anchor="w", pady=(6, 0))

        self.guide_frame = tk.LabelFrame(self.frame, text="Care Guide", padx=8, pady=6)
        self.guide_text = tk.Text(self.guide_frame, height=10, wrap="word",
                                  font=("Arial", 9), state="disabled")
        self.guide_text.pack(fill="both", expand=True)

    def render(self, cycle: AnalysisCycle):
        for f in (self.ident_frame, self.health_frame, self.guide_frame):
            f.pack_forget()

        ident = cycle.identification
        if ident and cycle.state != AnalysisState.ERROR:
            self.common_lbl.config(text=ident.common_name)
            self.latin_lbl.config(text=ident.latin_name)
            self.conf_lbl.config(text=f"Confidence: {round(ident.confidence * 100)}%")
            self.conf_var.set(ident.confidence * 100)
            self.desc_lbl.config(text=ident.description)
            self.ident_frame.pack(fill="x", pady=(0, 6))

        health = cycle.health
        if health and cycle.state == AnalysisState.DONE:
            if health.is_healthy:
                self.status_lbl.config(text="Healthy", fg=GREEN)
            else:
                self.status_lbl.config(text="Needs attention", fg=RED)
            self.diag_lbl.config(text=health.diagnosis)
            self.tips_lbl.config(text=health.care_tips)
            self.guide_btn.config(state="disabled" if cycle.task_label else "normal")
            self.health_frame.pack(fill="x", pady=(0, 6))

        if cycle.care_guide and cycle.state == AnalysisState.DONE:
            self.guide_text.configure(state="normal")
            self.guide_text.delete("1.0", tk.END)
            self.guide_text.insert("1.0", cycle.care_guide.care_tips)
            self.guide_text.configure(state="disabled")
            self.guide_frame.pack(fill="both", expand=True)


# =============================================================================
# MAIN GUI
# =============================================================================

class FroGUI:
    def __init__(self, backend=None, prefs: Optional[Preferences] = None):
        self.root = tk.Tk()
        self.root.title("Frô")
        self.root.resizable(True, True)
        self.root.minsize(640, 720)
        self._log_queue: queue.Queue = queue.Queue()
        self._log_handler = QueueLogHandler(self._log_queue)
        logging.getLogger().addHandler(self._log_handler)

        self.prefs        = prefs or Preferences()
        self.backend      = backend or OpenCVCameraBackend()
        self.controller   = MediaCaptureController(self.backend, on_notice=self._notice)
        self.fallback     = CaptureFallbackHandler()
        self.orchestrator = AnalysisOrchestrator(
            on_change=lambda c: self.root.after(0, self._render_cycle, c),
            on_notice=self._notice,
        )
        self.payload: Optional[ImagePayload] = None
        self._preview_ref = None
        self._camera_dialog: Optional[CameraDialog] = None

        self._set_icon()
        self._build_ui()
        self._poll_log_queue()
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)

        self.fallback.check_platform(self.backend)
        self._refresh_fallback_banner()
        if not self.prefs.tutorial_seen:
            self.root.after(200, lambda: TutorialDialog(self.root, self.prefs))

    def _set_icon(self):
        """Draw a small leaf window icon."""
        try:
            size = 32
            img  = Image.new("RGBA", (size, size), (0, 0, 0, 0))
            draw = ImageDraw.Draw(img)
            draw.ellipse([4, 6, 28, 26], fill=(45, 106, 45, 255))
            draw.line([6, 28, 26, 8], fill=(230, 245, 230), width=2)
            icon = ImageTk.PhotoImage(img)
            self.root.iconphoto(True, icon)
            self._icon_ref = icon   # prevent garbage collection
        except tk.TclError:
            pass

    def _build_ui(self):
        root = self.root

        menubar   = tk.Menu(root)
        help_menu = tk.Menu(menubar, tearoff=0)
        help_menu.add_command(label="How it works",
                              command=lambda: TutorialDialog(self.root, self.prefs))
        help_menu.add_command(label="About Frô", command=self._show_about)
        menubar.add_cascade(label="Help", menu=help_menu)
        root.config(menu=menubar)

        header = tk.Frame(root, bg=DARK_GREEN)
        header.pack(fill="x")
        tk.Label(header, text="Frô", bg=DARK_GREEN, fg="white",
                 font=("Arial", 20, "bold"), pady=6).pack()
        tk.Label(header,
                 text="Photograph a plant and Frô, our botanical AI, identifies it, "
                      "checks its health and gives care tips.",
                 bg=DARK_GREEN, fg="#CDE8CD", font=("Arial", 9),
                 wraplength=560).pack(pady=(0, 8))

        # Fallback banner, packed only while the upload path is forced
        self.fallback_frame = tk.Frame(root, bg=RED, pady=4)
        self.fallback_lbl = tk.Label(self.fallback_frame, bg=RED, fg="white",
                                     font=("", 9, "bold"), anchor="w",
                                     wraplength=560, justify="left")
        self.fallback_lbl.pack(side="left", padx=8)

        # Preview
        self.preview_frame = tk.LabelFrame(root, text="Image Preview", padx=6, pady=6)
        self.preview_frame.pack(fill="x", padx=10, pady=(8, 4))
        self.preview_lbl = tk.Label(self.preview_frame, text="No image yet.",
                                    fg="#888", height=10)
        self.preview_lbl.pack(fill="x")

        # Input buttons
        row = tk.Frame(root, padx=10, pady=4)
        row.pack(fill="x")
        self.camera_btn = tk.Button(row, text="Open Camera", command=self._open_camera,
                                    bg=GREEN, fg="white", font=("", 10, "bold"), padx=8)
        self.camera_btn.pack(side="left")
        self.upload_btn = tk.Button(row, text="Upload Photo", command=self._upload,
                                    padx=8)
        self.upload_btn.pack(side="left", padx=6)
        self.clear_btn = tk.Button(row, text="New Analysis", command=self._clear,
                                   padx=8)
        self.clear_btn.pack(side="right")

        self.analyze_btn = tk.Button(root, text="Analyze Plant",
                                     command=self._start_analysis,
                                     bg="#1A4F8A", fg="white",
                                     font=("", 11, "bold"), padx=12, pady=6,
                                     state="disabled")
        self.analyze_btn.pack(pady=(6, 2))

        self.progress_label = tk.Label(root, text="", font=("", 9, "italic"), fg="#555")
        self.progress_label.pack(fill="x")

        self.presenter = ResultPresenter(root, on_care_guide=self._start_care_guide)
        self.presenter.frame.pack(fill="both", expand=True, padx=10, pady=(4, 4))

        log_frame = tk.LabelFrame(root, text="Log", padx=4, pady=4)
        log_frame.pack(fill="x", padx=10, pady=(4, 10))
        vsb = tk.Scrollbar(log_frame)
        vsb.pack(side="right", fill="y")
        self.log_box = tk.Text(log_frame, height=6, width=90,
                               yscrollcommand=vsb.set, state="disabled",
                               font=("Courier", 8))
        self.log_box.pack(fill="both", expand=True)
        vsb.config(command=self.log_box.yview)

    # -- Notices and logging ------------------------------------------------------

    def _notice(self, title: str, message: str):
        self.log(f"{title}: {message}")

    def _poll_log_queue(self):
        try:
            while True:
                msg = self._log_queue.get_nowait()
                self.log_box.configure(state="normal")
                self.log_box.insert(tk.END, msg + "\n")
                self.log_box.see(tk.END)
                self.log_box.configure(state="disabled")
        except queue.Empty:
            pass
        self.root.after(100, self._poll_log_queue)

    def log(self, msg: str):
        self._log_queue.put(msg)

    # -- Input ----------------------------------------------------------------------

    def _refresh_fallback_banner(self):
        if self.fallback.active:
            self.fallback_lbl.config(
                text=f"Camera problem: {self.fallback.reason}  Use 'Upload Photo' instead.")
            self.fallback_frame.pack(fill="x", padx=10, pady=(6, 0), before=self.preview_frame)
            self.camera_btn.config(state="disabled")
        else:
            self.fallback_frame.pack_forget()

    def _open_camera(self):
        if self.orchestrator.is_busy:
            return
        self._set_payload(None)
        self._camera_dialog = CameraDialog(self.root, self.controller,
                                           on_capture=self._on_captured,
                                           on_unavailable=self._on_camera_unavailable)

    def _on_captured(self, payload: ImagePayload):
        self._camera_dialog = None
        self._set_payload(payload)
        self._notice("Photo captured", "The camera image was captured.")

    def _on_camera_unavailable(self, exc: CameraUnavailable):
        self._camera_dialog = None
        self.fallback.handle_unavailable(exc)
        self._refresh_fallback_banner()
        messagebox.showerror("Camera access denied", str(exc), parent=self.root)

    def _upload(self):
        if self.orchestrator.is_busy:
            return
        path = filedialog.askopenfilename(title="Select Plant Photo",
                                          filetypes=IMG_FILETYPES)
        if not path:
            return
        self.controller.release()
        try:
            payload = self.fallback.read_selected_file(path)
        except FroError as e:
            self._set_payload(None)
            messagebox.showerror("Error", str(e), parent=self.root)
            return
        self._set_payload(payload)

    def _set_payload(self, payload: Optional[ImagePayload]):
        """New image in, old results out."""
        self.payload = payload
        if not self.orchestrator.is_busy:
            self.orchestrator.clear()
        if payload is None:
            self._preview_ref = None
            self.preview_lbl.config(image="", text="No image yet.", height=10)
            self.analyze_btn.config(state="disabled")
            return
        try:
            self._preview_ref = payload_to_photo(payload)
            self.preview_lbl.config(image=self._preview_ref, text="", height=0)
        except OSError as e:
            log.warning("Could not render preview: %s", e)
            self.preview_lbl.config(image="", text="(preview unavailable)")
        self.analyze_btn.config(state="normal")

    def _clear(self):
        if self.orchestrator.is_busy:
            return
        if self._camera_dialog is not None:
            self._camera_dialog.close()
            self._camera_dialog = None
        self.controller.reset()
        self._set_payload(None)
        self.progress_label.config(text="")

    # -- Analysis dispatch -----------------------------------------------------------

    def _set_busy(self, busy: bool):
        state = "disabled" if busy else "normal"
        for btn in (self.upload_btn, self.clear_btn):
            btn.config(state=state)
        self.camera_btn.config(state="disabled" if busy or self.fallback.active else "normal")
        self.analyze_btn.config(state="disabled" if busy or self.payload is None else "normal")

    def _start_analysis(self):
        if self.payload is None:
            messagebox.showerror("No image",
                                 "Please upload a photo of the plant or capture one with the camera.",
                                 parent=self.root)
            return
        self._set_busy(True)
        threading.Thread(target=self._run_analysis, args=(self.payload,), daemon=True).start()

    def _run_analysis(self, payload: ImagePayload):
        try:
            cycle = self.orchestrator.run_analysis(payload)
            if cycle.state == AnalysisState.ERROR:
                self.root.after(0, lambda err=cycle.error: messagebox.showerror(
                    "Analysis failed", err, parent=self.root))
        except FroError as e:
            self.log(f"Error: {e}")
        except Exception as e:
            self.log(f"Unexpected error: {e}")
        finally:
            self.root.after(0, lambda: self._set_busy(False))

    def _start_care_guide(self):
        self._set_busy(True)
        threading.Thread(target=self._run_care_guide, daemon=True).start()

    def _run_care_guide(self):
        try:
            self.orchestrator.build_care_guide()
        except FroError as e:
            self.log(f"Error: {e}")
        except Exception as e:
            self.log(f"Unexpected error: {e}")
        finally:
            self.root.after(0, lambda: self._set_busy(False))

    def _render_cycle(self, cycle: AnalysisCycle):
        self.progress_label.config(text=cycle.task_label or "")
        self.presenter.render(cycle)

    # -- About dialog ------------------------------------------------------------------

    def _show_about(self):
        popup = tk.Toplevel(self.root)
        popup.title("About Frô")
        popup.resizable(False, False)
        popup.grab_set()

        banner = tk.Frame(popup, bg=DARK_GREEN)
        banner.pack(fill="x")
        tk.Label(banner, text="Frô", bg=DARK_GREEN, fg="white",
                 font=("Arial", 18, "bold"), pady=12).pack()
        tk.Label(banner, text="Plant identification and health analysis",
                 bg=DARK_GREEN, fg="#CDE8CD", font=("Arial", 10)).pack(pady=(0, 10))

        info = tk.Frame(popup, padx=24, pady=16)
        info.pack()
        dev = self.controller.current_device
        lines = [
            ("AI runtime:",     "Ollama"),
            ("Vision model:",   VISION_MODEL),
            ("Text model:",     TEXT_MODEL),
            ("Camera:",         dev.label if dev else "not in use"),
        ]
        for label, value in lines:
            row = tk.Frame(info)
            row.pack(fill="x", pady=2)
            tk.Label(row, text=label, font=("Arial", 9, "bold"),
                     width=14, anchor="e").pack(side="left")
            tk.Label(row, text=value, font=("Arial", 9),
                     fg="#333", anchor="w").pack(side="left", padx=8)

        tk.Button(popup, text="Close", command=popup.destroy,
                  bg=GREEN, fg="white", font=("Arial", 9, "bold"),
                  padx=16, pady=4).pack(pady=(0, 16))

        popup.update_idletasks()
        x = self.root.winfo_x() + (self.root.winfo_width()  - popup.winfo_width())  // 2
        y = self.root.winfo_y() + (self.root.winfo_height() - popup.winfo_height()) // 2
        popup.geometry(f"+{x}+{y}")

    def _on_close(self):
        self.controller.release()
        logging.getLogger().removeHandler(self._log_handler)
        self.root.destroy()

    def run(self):
        self.root.mainloop()
