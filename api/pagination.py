import math

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class EnvelopePagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100

    def get_paginated_payload(self, data):
        total = self.page.paginator.count
        page_size = self.page.paginator.per_page
        return {
            "items": data,
            "total": total,
            "page": self.page.number,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size) if page_size else 0,
        }

    def get_paginated_response(self, data):
        return Response({"success": True, "data": self.get_paginated_payload(data)})
