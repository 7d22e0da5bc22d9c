"""Folder view and selection state for a course's media manager."""

import logging
from typing import Callable

import requests

from lms_backend.client.media_client import DirectoryView, MediaFileView

logger = logging.getLogger(__name__)

DOWNLOAD_PREFIX = '/media/download/'


class LoggingNotifier:
    """Stand-in for a snack bar: short and long notices go to the log."""

    def open(self, message: str) -> None:
        logger.info(message)

    def open_long(self, message: str) -> None:
        logger.warning(message)


def sort_by_name(items: list) -> list:
    return sorted(items, key=lambda item: item.name.lower())


def describe_error(exc: requests.RequestException) -> str:
    response = getattr(exc, 'response', None)
    if response is not None:
        try:
            detail = response.json().get('detail')
        except ValueError:
            detail = None
        if detail:
            return str(detail)
    return str(exc) or 'Server error'


class CourseMediaBrowser:
    def __init__(self, service, notifier=None):
        self.service = service
        self.notifier = notifier or LoggingNotifier()
        self.course = None
        self.current_folder: DirectoryView | None = None
        self.selected_files: list[MediaFileView] = []
        self.folder_bar_visible = False
        self.toggle_blocked = False

    def open_course(self, course_id: str) -> None:
        try:
            self.course = self.service.read_course_to_edit(course_id)

            if self.course.media is None:
                root = self.service.create_root_dir(self.course.name)
                self.service.update_course(self.course.id, media_id=root.id)
                self.course = self.service.read_course_to_edit(self.course.id)

            self.change_directory(self.course.media.id, lazy=True)
        except requests.RequestException as exc:
            self.notifier.open(describe_error(exc))

    def change_directory(self, directory_id: str, lazy: bool = False) -> DirectoryView:
        folder = self.service.get_directory(directory_id, lazy)
        folder.files = sort_by_name(folder.files)
        folder.sub_directories = sort_by_name(folder.sub_directories)
        self.current_folder = folder
        return folder

    def reload_directory(self) -> DirectoryView:
        return self.change_directory(self.current_folder.id, lazy=True)

    def toggle_folder_bar(self) -> None:
        self.folder_bar_visible = not self.folder_bar_visible

    def add_file(self, path: str) -> MediaFileView | None:
        """Upload ``path`` into the current folder and reload it on success."""
        try:
            uploaded = self.service.upload_file(self.current_folder.id, path)
        except (requests.RequestException, OSError) as exc:
            logger.warning('Could not upload %s: %s', path, exc)
            self.notifier.open('Upload failed, Server error')
            return None

        self.notifier.open('Uploaded ' + uploaded.name)
        self.reload_directory()
        return uploaded

    def is_selected(self, media_file: MediaFileView) -> bool:
        return any(selected.id == media_file.id for selected in self.selected_files)

    def toggle_selection(self, media_file: MediaFileView) -> None:
        if self.toggle_blocked:
            return
        if self.is_selected(media_file):
            self.selected_files = [selected for selected in self.selected_files if selected.id != media_file.id]
        else:
            self.selected_files.append(media_file)

    def remove_selected_files(self, confirm: Callable[[], bool]) -> list[str]:
        """Delete the selection one file at a time and return the names that failed."""
        self.toggle_blocked = True
        try:
            if not confirm():
                return []

            files_failed = []
            for media_file in self.selected_files:
                try:
                    self.service.delete_file(media_file)
                except requests.RequestException:
                    logger.warning('Could not remove file %s', media_file.id)
                    files_failed.append(media_file.name)

            if not files_failed:
                self.notifier.open('Removed all selected files')
            else:
                self.notifier.open_long('Could not remove: ' + ', '.join(files_failed))

            self.selected_files = []
            self.reload_directory()
            return files_failed
        finally:
            self.toggle_blocked = False

    def rename_file(self, media_file: MediaFileView, new_name: str | None) -> None:
        if not new_name:
            return

        media_file.name = new_name
        try:
            self.service.update_file(media_file)
            self.notifier.open('Renamed file')
        except requests.RequestException:
            self.notifier.open('Rename failed, Server error')
        self.reload_directory()

    def download_url(self, media_file: MediaFileView) -> str:
        self.toggle_selection(media_file)
        return DOWNLOAD_PREFIX + media_file.id
