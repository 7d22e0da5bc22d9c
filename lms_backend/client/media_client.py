"""HTTP client for the course and media endpoints."""

import os

import requests
from pydantic import BaseModel


class MediaFileView(BaseModel):
    id: str
    name: str
    link: str
    size: int | None = None
    mime_type: str | None = None
    directory_id: str | None = None


class DirectoryView(BaseModel):
    id: str
    name: str
    parent_id: str | None = None
    files: list[MediaFileView] = []
    sub_directories: list['DirectoryView'] = []


class MediaSummary(BaseModel):
    id: str
    name: str


class CourseView(BaseModel):
    id: str
    name: str
    description: str | None = ''
    course_admin_id: str | None = None
    media: MediaSummary | None = None


class MediaApiClient:
    def __init__(self, base_url: str, token: str, session: requests.Session | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Authorization': f'Bearer {token}'})

    def _request(self, method: str, path: str, **kwargs) -> dict:
        response = self.session.request(method, f'{self.base_url}{path}', timeout=self.timeout, **kwargs)
        response.raise_for_status()
        return response.json()

    def read_course_to_edit(self, course_id: str) -> CourseView:
        return CourseView.model_validate(self._request('GET', f'/courses/{course_id}/edit'))

    def update_course(self, course_id: str, media_id: str | None = None) -> CourseView:
        payload = {'media_id': media_id} if media_id else {}
        return CourseView.model_validate(self._request('PUT', f'/courses/{course_id}', json=payload))

    def create_root_dir(self, name: str) -> DirectoryView:
        return DirectoryView.model_validate(self._request('POST', '/media/directory', json={'name': name}))

    def get_directory(self, directory_id: str, lazy: bool = False) -> DirectoryView:
        data = self._request('GET', f'/media/directory/{directory_id}', params={'lazy': str(lazy).lower()})
        return DirectoryView.model_validate(data)

    def update_file(self, media_file: MediaFileView) -> MediaFileView:
        data = self._request('PUT', f'/media/file/{media_file.id}', json={'name': media_file.name})
        return MediaFileView.model_validate(data)

    def delete_file(self, media_file: MediaFileView) -> None:
        self._request('DELETE', f'/media/file/{media_file.id}')

    def upload_file(self, directory_id: str, path: str) -> MediaFileView:
        with open(path, 'rb') as handle:
            files = {'file': (os.path.basename(path), handle)}
            data = self._request('POST', f'/media/file/{directory_id}', files=files)
        return MediaFileView.model_validate(data)

    def download_file(self, media_file: MediaFileView, destination: str) -> str:
        response = self.session.request(
            'GET',
            f'{self.base_url}/media/download/{media_file.id}',
            timeout=self.timeout,
            stream=True,
        )
        response.raise_for_status()
        with open(destination, 'wb') as target:
            for chunk in response.iter_content(chunk_size=64 * 1024):
                target.write(chunk)
        return destination
