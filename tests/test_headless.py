import pytest

from conftest import make_node, make_pod, make_service, make_slice, summarize

HOSTNAME = 'external-dns.alpha.kubernetes.io/hostname'
ENDPOINTS_TYPE = 'external-dns.alpha.kubernetes.io/endpoints-type'
TARGET = 'external-dns.alpha.kubernetes.io/target'
SELECTOR = {'component': 'foo'}


def headless_service(annotations=None, **kwargs):
    return make_service('foo', type='ClusterIP', cluster_ip='None', selector=SELECTOR,
                        annotations={HOSTNAME: 'service.example.org', **(annotations or {})}, **kwargs)


def pod(name, ip, hostname=None, **kwargs):
    return make_pod(name, ip=ip, hostname=hostname, labels=dict(SELECTOR), **kwargs)


@pytest.fixture
def two_pods(cluster):
    cluster.pods.extend([
        pod('foo-0', '1.1.1.1', hostname='foo-0', node='node1', host_ip='10.0.1.1'),
        pod('foo-1', '1.1.1.2', hostname='foo-1', node='node2', host_ip='10.0.1.2'),
    ])
    return cluster.pods


class TestHeadless:
    def test_per_pod_and_aggregate_records(self, cluster, two_pods):
        cluster.services.append(headless_service())
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True), ('1.1.1.2', 'foo-1', True)]))
        assert summarize(cluster.source().endpoints()) == [
            ('foo-0.service.example.org', 'A', ['1.1.1.1'], None, ''),
            ('foo-1.service.example.org', 'A', ['1.1.1.2'], None, ''),
            ('service.example.org', 'A', ['1.1.1.1', '1.1.1.2'], None, ''),
        ]

    def test_pods_without_hostname_only_join_aggregate(self, cluster):
        cluster.pods.extend([pod('foo-0', '1.1.1.1'), pod('foo-1', '1.1.1.2', hostname='foo-1')])
        cluster.services.append(headless_service())
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True), ('1.1.1.2', 'foo-1', True)]))
        assert [e.dns_name for e in cluster.source().endpoints()] == [
            'foo-1.service.example.org', 'service.example.org',
        ]

    def test_not_ready_skipped(self, cluster, two_pods):
        cluster.services.append(headless_service())
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True), ('1.1.1.2', 'foo-1', False)]))
        assert summarize(cluster.source().endpoints()) == [
            ('foo-0.service.example.org', 'A', ['1.1.1.1'], None, ''),
            ('service.example.org', 'A', ['1.1.1.1'], None, ''),
        ]

    def test_service_publishes_not_ready(self, cluster, two_pods):
        cluster.services.append(headless_service(publish_not_ready=True))
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True), ('1.1.1.2', 'foo-1', False)]))
        aggregate = [e for e in cluster.source().endpoints() if e.dns_name == 'service.example.org']
        assert aggregate[0].targets == ['1.1.1.1', '1.1.1.2']

    def test_always_publish_not_ready(self, cluster, two_pods):
        cluster.services.append(headless_service())
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', False), ('1.1.1.2', 'foo-1', False)]))
        source = cluster.source(always_publish_not_ready_addresses=True)
        assert len(source.endpoints()) == 3

    def test_dual_stack(self, cluster):
        cluster.pods.extend([pod('foo-0', '1.1.1.1', hostname='foo-0')])
        cluster.services.append(headless_service())
        cluster.endpoint_slices.extend([
            make_slice('foo', [('1.1.1.1', 'foo-0', True)], address_type='IPv4'),
            make_slice('foo', [('2001:db8::1', 'foo-0', True)], address_type='IPv6'),
        ])
        assert summarize(cluster.source().endpoints()) == [
            ('foo-0.service.example.org', 'A', ['1.1.1.1'], None, ''),
            ('foo-0.service.example.org', 'AAAA', ['2001:db8::1'], None, ''),
            ('service.example.org', 'A', ['1.1.1.1'], None, ''),
            ('service.example.org', 'AAAA', ['2001:db8::1'], None, ''),
        ]

    def test_fqdn_slices_skipped(self, cluster, two_pods):
        cluster.services.append(headless_service())
        cluster.endpoint_slices.append(make_slice('foo', [('foo.example.com', 'foo-0', True)], address_type='FQDN'))
        assert cluster.source().endpoints() == []

    def test_host_ip_endpoints_type(self, cluster, two_pods):
        cluster.services.append(headless_service(annotations={ENDPOINTS_TYPE: 'HostIP'}))
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True), ('1.1.1.2', 'foo-1', True)]))
        aggregate = [e for e in cluster.source().endpoints() if e.dns_name == 'service.example.org']
        assert aggregate[0].targets == ['10.0.1.1', '10.0.1.2']

    def test_publish_host_ip_flag(self, cluster, two_pods):
        cluster.services.append(headless_service())
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True)]))
        source = cluster.source(publish_host_ip=True)
        assert [e.targets for e in source.endpoints()] == [['10.0.1.1'], ['10.0.1.1']]

    def test_node_external_ip_endpoints_type(self, cluster, two_pods):
        cluster.nodes.extend([
            make_node('node1', [('ExternalIP', '54.10.11.1'), ('InternalIP', '10.0.1.1')]),
            make_node('node2', [('ExternalIP', '54.10.11.2'), ('InternalIP', '2001:db8::2')]),
        ])
        cluster.services.append(headless_service(annotations={ENDPOINTS_TYPE: 'NodeExternalIP'}))
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True), ('1.1.1.2', 'foo-1', True)]))
        source = cluster.source(expose_internal_ipv6=True)
        aggregate = [(e.record_type, e.targets) for e in source.endpoints() if e.dns_name == 'service.example.org']
        assert aggregate == [('A', ['54.10.11.1', '54.10.11.2']), ('AAAA', ['2001:db8::2'])]

    def test_node_external_ip_without_node_cache(self, cluster, two_pods):
        cluster.services.append(headless_service(annotations={ENDPOINTS_TYPE: 'NodeExternalIP'}))
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True)]))
        assert cluster.source(service_type_filter=('ClusterIP',)).endpoints() == []

    def test_pod_target_annotation(self, cluster):
        cluster.pods.append(pod('foo-0', '1.1.1.1', hostname='foo-0', annotations={TARGET: '2.2.2.2'}))
        cluster.services.append(headless_service())
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True)]))
        assert [e.targets for e in cluster.source().endpoints()] == [['2.2.2.2'], ['2.2.2.2']]

    def test_service_target_annotation_overrides(self, cluster, two_pods):
        cluster.services.append(headless_service(annotations={TARGET: 'lb.example.com'}))
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True)]))
        assert summarize(cluster.source().endpoints()) == [
            ('service.example.org', 'CNAME', ['lb.example.com'], None, ''),
        ]

    def test_ttl(self, cluster, two_pods):
        cluster.services.append(headless_service(annotations={'external-dns.alpha.kubernetes.io/ttl': '1m'}))
        cluster.endpoint_slices.append(make_slice('foo', [('1.1.1.1', 'foo-0', True)]))
        assert {e.record_ttl for e in cluster.source().endpoints()} == {60}

    def test_unselected_and_unreferenced_pods_skipped(self, cluster):
        cluster.pods.extend([
            pod('foo-0', '1.1.1.1', hostname='foo-0'),
            make_pod('stray', ip='1.1.1.9', hostname='stray', labels={'component': 'bar'}),
        ])
        cluster.services.append(headless_service())
        cluster.endpoint_slices.append(make_slice('foo', [
            ('1.1.1.1', 'foo-0', True), ('1.1.1.9', 'stray', True), ('1.1.1.8', None, True), ('1.1.1.7', 'gone', True),
        ]))
        assert [e.targets for e in cluster.source().endpoints()] == [['1.1.1.1'], ['1.1.1.1']]

    def test_other_services_slices_ignored(self, cluster, two_pods):
        cluster.services.append(headless_service())
        cluster.endpoint_slices.append(make_slice('bar', [('1.1.1.1', 'foo-0', True)]))
        assert cluster.source().endpoints() == []
